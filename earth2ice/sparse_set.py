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
"""Sparse <-> dense index compaction

A matrix build only touches a small subset of a (possibly huge) global index
space, e.g. the ice covered cells of a 1 arc-minute global grid. ``SparseSet``
assigns those ids compact "dense" ids ``0..n-1`` in order of first reference so
the matrix can be stored with small dimensions, and remembers how to translate
back.
"""
from typing import Iterator, Optional

import numpy as np

__all__ = ["SparseSet"]


class SparseSet:
    """Bidirectional map between sparse (global) ids and dense (local) ids

    Args:
        sparse_extent: optional declared size of the sparse index space. If
            given, registering an id outside ``[0, sparse_extent)`` raises.
    """

    def __init__(self, sparse_extent: Optional[int] = None):
        self._to_dense: dict[int, int] = {}
        self._to_sparse: list[int] = []
        self._sparse_extent = sparse_extent
        self._sorted = None

    def set_sparse_extent(self, n: int):
        if self._to_sparse and max(self._to_sparse) >= n:
            raise IndexError(f"sparse extent {n} is smaller than registered id {max(self._to_sparse)}")
        self._sparse_extent = n

    def dense_extent(self) -> int:
        return len(self._to_sparse)

    def sparse_extent(self) -> int:
        if self._sparse_extent is not None:
            return self._sparse_extent
        if not self._to_sparse:
            return 0
        return max(self._to_sparse) + 1

    def add_dense(self, sparse_id: int) -> int:
        """Register ``sparse_id`` and return its dense id"""
        sparse_id = int(sparse_id)
        dense_id = self._to_dense.get(sparse_id)
        if dense_id is not None:
            return dense_id

        if sparse_id < 0 or (self._sparse_extent is not None and sparse_id >= self._sparse_extent):
            raise IndexError(f"sparse id {sparse_id} outside of [0, {self.sparse_extent()})")

        dense_id = len(self._to_sparse)
        self._to_dense[sparse_id] = dense_id
        self._to_sparse.append(sparse_id)
        self._sorted = None
        return dense_id

    def add(self, sparse_ids) -> np.ndarray:
        """Vectorized :py:meth:`add_dense`

        New ids are assigned in order of first appearance in ``sparse_ids``.

        Returns:
            the dense ids, same shape as ``sparse_ids``
        """
        sparse_ids = np.asarray(sparse_ids, dtype=np.int64)
        unique, first = np.unique(sparse_ids, return_index=True)
        for sparse_id in unique[np.argsort(first, kind="stable")]:
            self.add_dense(sparse_id)
        return self.to_dense_array(sparse_ids)

    def to_dense(self, sparse_id: int) -> int:
        try:
            return self._to_dense[int(sparse_id)]
        except KeyError:
            raise IndexError(f"sparse id {sparse_id} has not been registered") from None

    def to_sparse(self, dense_id: int) -> int:
        dense_id = int(dense_id)
        if dense_id < 0 or dense_id >= len(self._to_sparse):
            raise IndexError(f"dense id {dense_id} outside of [0, {len(self._to_sparse)})")
        return self._to_sparse[dense_id]

    def _lookup(self):
        if self._sorted is None:
            sparse = np.asarray(self._to_sparse, dtype=np.int64)
            order = np.argsort(sparse)
            self._sorted = (sparse[order], order)
        return self._sorted

    def to_dense_array(self, sparse_ids) -> np.ndarray:
        sparse_ids = np.asarray(sparse_ids, dtype=np.int64)
        keys, dense = self._lookup()
        pos = np.searchsorted(keys, sparse_ids)
        pos_clipped = np.minimum(pos, max(len(keys) - 1, 0))
        found = (pos < len(keys)) & (keys[pos_clipped] == sparse_ids) if len(keys) else np.zeros_like(pos, dtype=bool)
        if not np.all(found):
            missing = sparse_ids[~found]
            raise IndexError(f"sparse ids have not been registered: {missing[:10].tolist()}")
        return dense[pos_clipped]

    def to_sparse_array(self, dense_ids=None) -> np.ndarray:
        """Sparse ids of ``dense_ids``; the full dense -> sparse table if omitted"""
        table = np.asarray(self._to_sparse, dtype=np.int64)
        if dense_ids is None:
            return table
        dense_ids = np.asarray(dense_ids, dtype=np.int64)
        if np.any((dense_ids < 0) | (dense_ids >= len(table))):
            raise IndexError(f"dense ids outside of [0, {len(table)})")
        return table[dense_ids]

    def __len__(self):
        return self.dense_extent()

    def __contains__(self, sparse_id):
        return int(sparse_id) in self._to_dense

    def __iter__(self) -> Iterator[int]:
        return iter(self._to_sparse)

    def __repr__(self):
        return f"SparseSet(dense_extent={self.dense_extent()}, sparse_extent={self.sparse_extent()})"
