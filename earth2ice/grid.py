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
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

import numpy as np

from earth2ice.errors import ConfigurationError

__all__ = ["Cell", "Grid", "ExchangeGrid"]


@dataclass(frozen=True)
class Cell:
    index: int
    native_area: float
    proj_area: Optional[float] = None
    centroid: Optional[tuple[float, float]] = None


def _optional_array(name, values, n):
    if values is None:
        return None
    values = np.asarray(values, dtype=np.float64)
    if values.shape != (n,):
        raise ConfigurationError(f"{name} has the wrong shape", expected=(n,), got=values.shape)
    return values


class Grid:
    """An ordered set of cells, stored column-wise

    Only the quantities the matrix engine needs are kept: cell ids, areas and
    (optionally) projected areas and centroids. Geometry (vertices) belongs to
    whatever generated the grid.
    """

    def __init__(
        self,
        name: str,
        index,
        native_area,
        proj_area=None,
        x=None,
        y=None,
        parameterization: str = "L0",
        sparse_extent: Optional[int] = None,
    ):
        """
        Args:
            name: grid name
            index: (n,) sparse cell ids, unique and non-negative
            native_area: (n,) cell areas on the sphere
            proj_area: (n,) cell areas in the projected plane, optional. NaN
                entries mean "same as native"
            x, y: (n,) cell centroids in the projected plane, optional. Needed
                for smoothing.
            parameterization: how the ice model represents fields on this
                grid, selects the ice regridder type
            sparse_extent: size of the id space; defaults to ``max(index) + 1``
        """
        self.name = name
        self.index = np.asarray(index, dtype=np.int64)
        if self.index.ndim != 1:
            raise ConfigurationError("grid index must be 1-d", grid=name, shape=self.index.shape)
        n = self.index.size
        if np.unique(self.index).size != n:
            raise ConfigurationError("grid cell ids must be unique", grid=name)
        if n and self.index.min() < 0:
            raise ConfigurationError("grid cell ids must be non-negative", grid=name)

        self.native_area = _optional_array("native_area", native_area, n)
        self.proj_area = _optional_array("proj_area", proj_area, n)
        self.x = _optional_array("x", x, n)
        self.y = _optional_array("y", y, n)
        if (self.x is None) != (self.y is None):
            raise ConfigurationError("x and y centroids must be given together", grid=name)

        self.parameterization = parameterization

        if sparse_extent is None:
            sparse_extent = int(self.index.max()) + 1 if n else 0
        elif n and self.index.max() >= sparse_extent:
            raise ConfigurationError(
                "grid cell id outside of sparse extent", grid=name, sparse_extent=sparse_extent, max_id=int(self.index.max())
            )
        self.sparse_extent = int(sparse_extent)

    @classmethod
    def from_cells(cls, name: str, cells, **kwargs) -> "Grid":
        cells = list(cells)
        has_proj = any(c.proj_area is not None for c in cells)
        has_centroid = any(c.centroid is not None for c in cells)
        return cls(
            name,
            index=[c.index for c in cells],
            native_area=[c.native_area for c in cells],
            proj_area=[np.nan if c.proj_area is None else c.proj_area for c in cells] if has_proj else None,
            x=[np.nan if c.centroid is None else c.centroid[0] for c in cells] if has_centroid else None,
            y=[np.nan if c.centroid is None else c.centroid[1] for c in cells] if has_centroid else None,
            **kwargs,
        )

    @property
    def ncells(self) -> int:
        return self.index.size

    @property
    def has_centroids(self) -> bool:
        return self.x is not None

    @property
    def cells(self) -> Iterator[Cell]:
        for i in range(self.ncells):
            proj = None
            if self.proj_area is not None and not np.isnan(self.proj_area[i]):
                proj = float(self.proj_area[i])
            centroid = None if self.x is None else (float(self.x[i]), float(self.y[i]))
            yield Cell(int(self.index[i]), float(self.native_area[i]), proj, centroid)

    def __len__(self):
        return self.ncells

    def __contains__(self, sparse_id):
        return bool(np.any(self.index == sparse_id))

    def positions(self, sparse_ids) -> np.ndarray:
        """Position in the cell arrays of each of ``sparse_ids``, -1 if absent"""
        sparse_ids = np.asarray(sparse_ids, dtype=np.int64)
        order = np.argsort(self.index)
        keys = self.index[order]
        if keys.size == 0:
            return np.full(sparse_ids.shape, -1, dtype=np.int64)
        pos = np.minimum(np.searchsorted(keys, sparse_ids), keys.size - 1)
        return np.where(keys[pos] == sparse_ids, order[pos], -1)

    def area_ratio(self) -> np.ndarray:
        """native / projected area per cell, 1 where no projected area is known"""
        if self.proj_area is None:
            return np.ones(self.ncells)
        ratio = self.native_area / self.proj_area
        return np.where(np.isnan(self.proj_area), 1.0, ratio)

    def filter_cells(self, keep: Callable[[int], bool]):
        """Discard cells whose sparse id fails ``keep``"""
        mask = np.fromiter((bool(keep(int(i))) for i in self.index), dtype=bool, count=self.ncells)
        self._apply_mask(mask)

    def _apply_mask(self, mask: np.ndarray):
        self.index = self.index[mask]
        self.native_area = self.native_area[mask]
        for attr in ("proj_area", "x", "y"):
            value = getattr(self, attr)
            if value is not None:
                setattr(self, attr, value[mask])

    def __repr__(self):
        return f"Grid(name={self.name!r}, ncells={self.ncells}, sparse_extent={self.sparse_extent})"


class ExchangeGrid:
    """Overlap relation between an ice grid and the atmosphere grid

    One entry per (ice cell, atmosphere cell) pair that intersect, with the
    area of the intersection. Produced by an external overlap routine.
    """

    def __init__(self, iI, iA, area):
        self.iI = np.asarray(iI, dtype=np.int64)
        self.iA = np.asarray(iA, dtype=np.int64)
        self.area = np.asarray(area, dtype=np.float64)
        if not (self.iI.shape == self.iA.shape == self.area.shape) or self.iI.ndim != 1:
            raise ConfigurationError(
                "exchange grid arrays must be 1-d with equal lengths",
                iI=self.iI.shape,
                iA=self.iA.shape,
                area=self.area.shape,
            )

    def __len__(self):
        return self.area.size

    def filter(self, mask: np.ndarray):
        self.iI = self.iI[mask]
        self.iA = self.iA[mask]
        self.area = self.area[mask]

    def __repr__(self):
        return f"ExchangeGrid(n={len(self)})"
