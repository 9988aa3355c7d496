# SPDX-FileCopyrightText: Copyright (c) 2024 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Multi-dimensional <-> flat index arithmetic

The elevation class grid E is indexed by ``(atmosphere cell, elevation
class)``. The flat E index is::

    i = sum_k (t[k] - base[k]) * stride[k]

where the strides follow from ``extents`` and the axis order ``indices``
(outermost first). For example with ``indices=(1, 0)`` the elevation class is
the slowest varying axis and ``i = ihc * nA + iA``.
"""
from dataclasses import dataclass, field
from typing import Sequence, Tuple

import numpy as np

from earth2ice.errors import ConfigurationError

__all__ = ["Indexing", "tuple_to_index", "index_to_tuple", "elevation_classes"]


@dataclass(frozen=True)
class Indexing:
    """Index scheme

    Attrs:
        extents: size of each axis
        indices: axis order, outermost (slowest varying) first
        base: first index of each axis
        names: axis names, for messages only
    """

    extents: Tuple[int, ...]
    indices: Tuple[int, ...] = None
    base: Tuple[int, ...] = None
    names: Tuple[str, ...] = field(default=None, compare=False)

    def __post_init__(self):
        rank = len(self.extents)
        object.__setattr__(self, "extents", tuple(int(e) for e in self.extents))
        if self.indices is None:
            object.__setattr__(self, "indices", tuple(range(rank)))
        if self.base is None:
            object.__setattr__(self, "base", (0,) * rank)
        if self.names is None:
            object.__setattr__(self, "names", tuple(f"dim{i}" for i in range(rank)))

        for attr in ("indices", "base", "names"):
            value = tuple(getattr(self, attr))
            object.__setattr__(self, attr, value)
            if len(value) != rank:
                raise ConfigurationError(
                    f"Indexing.{attr} must have one entry per axis", attr=attr, expected=rank, got=len(value)
                )

        if sorted(self.indices) != list(range(rank)):
            raise ConfigurationError("Indexing.indices must be a permutation of the axes", indices=self.indices)

    @property
    def rank(self) -> int:
        return len(self.extents)

    @property
    def size(self) -> int:
        return int(np.prod(self.extents, dtype=np.int64))

    @property
    def strides(self) -> Tuple[int, ...]:
        strides = [0] * self.rank
        stride = 1
        for k in reversed(self.indices):
            strides[k] = stride
            stride *= self.extents[k]
        return tuple(strides)


def tuple_to_index(indexing: Indexing, *tup):
    """Flat index of ``tup``

    Each element of ``tup`` may be an int or an array; arrays broadcast.
    """
    if len(tup) != indexing.rank:
        raise ConfigurationError("tuple rank does not match indexing", expected=indexing.rank, got=len(tup))
    index = 0
    for k, stride in enumerate(indexing.strides):
        t = np.asarray(tup[k], dtype=np.int64) - indexing.base[k]
        if np.any((t < 0) | (t >= indexing.extents[k])):
            raise IndexError(f"index on axis {indexing.names[k]} outside of [0, {indexing.extents[k]})")
        index = index + t * stride
    return index


def index_to_tuple(indexing: Indexing, index) -> tuple:
    """Inverse of :py:func:`tuple_to_index`"""
    index = np.asarray(index, dtype=np.int64)
    if np.any((index < 0) | (index >= indexing.size)):
        raise IndexError(f"flat index outside of [0, {indexing.size})")
    out = [None] * indexing.rank
    for k in reversed(indexing.indices):
        out[k] = index % indexing.extents[k] + indexing.base[k]
        index = index // indexing.extents[k]
    return tuple(out)


def elevation_classes(lowest: float, highest: float, step: float) -> np.ndarray:
    """Elevation class centers ``lowest, lowest + step, ...`` up to ``highest``

    ``highest`` is included when it lies on the step.

    Examples:

        >>> elevation_classes(-100, 300, 200).tolist()
        [-100.0, 100.0, 300.0]
    """
    if step <= 0:
        raise ConfigurationError("elevation class step must be positive", step=step)
    if highest < lowest:
        raise ConfigurationError("highest elevation class below lowest", lowest=lowest, highest=highest)
    n = int(np.floor((highest - lowest) / step + 1e-9)) + 1
    return lowest + step * np.arange(n, dtype=np.float64)


def check_ascending(hcdefs: Sequence[float]) -> np.ndarray:
    hcdefs = np.asarray(hcdefs, dtype=np.float64)
    if hcdefs.ndim != 1 or hcdefs.size == 0:
        raise ConfigurationError("elevation classes must be a non-empty 1-d sequence", shape=hcdefs.shape)
    if np.any(np.diff(hcdefs) <= 0):
        raise ConfigurationError("elevation classes must be strictly ascending", hcdefs=hcdefs.tolist())
    return hcdefs
