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
"""Mergeable accumulators for sparse triplets and weight vectors

Both accumulators only append; summing of duplicates happens once, when the
result is materialized. ``merge`` is associative, so independently built
chunks can be reduced in any grouping (the order of the chunks still fixes
the floating point summation order).
"""
from typing import Tuple

import numpy as np
import scipy.sparse

__all__ = ["TripletAccumulator", "VectorAccumulator"]


def _concat(parts, dtype):
    if not parts:
        return np.zeros((0,), dtype=dtype)
    return np.concatenate(parts).astype(dtype, copy=False)


class TripletAccumulator:
    """(row, col, value) accumulator with the ADD duplicate policy"""

    def __init__(self):
        self._rows = []
        self._cols = []
        self._vals = []

    def add(self, rows, cols, vals):
        rows, cols, vals = np.broadcast_arrays(
            np.asarray(rows, dtype=np.int64), np.asarray(cols, dtype=np.int64), np.asarray(vals, dtype=np.float64)
        )
        self._rows.append(rows.ravel())
        self._cols.append(cols.ravel())
        self._vals.append(vals.ravel())
        return self

    def merge(self, other: "TripletAccumulator") -> "TripletAccumulator":
        out = TripletAccumulator()
        out._rows = self._rows + other._rows
        out._cols = self._cols + other._cols
        out._vals = self._vals + other._vals
        return out

    def triplets(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        return _concat(self._rows, np.int64), _concat(self._cols, np.int64), _concat(self._vals, np.float64)

    def __len__(self):
        return sum(len(v) for v in self._vals)

    def to_coo(self, shape) -> scipy.sparse.coo_matrix:
        """Materialize with duplicate (row, col) pairs summed"""
        rows, cols, vals = self.triplets()
        matrix = scipy.sparse.coo_matrix((vals, (rows, cols)), shape=shape)
        matrix.sum_duplicates()
        return matrix


class VectorAccumulator:
    """(index, value) accumulator with the ADD duplicate policy"""

    def __init__(self):
        self._index = []
        self._vals = []

    def add(self, index, vals):
        index, vals = np.broadcast_arrays(np.asarray(index, dtype=np.int64), np.asarray(vals, dtype=np.float64))
        self._index.append(index.ravel())
        self._vals.append(vals.ravel())
        return self

    def merge(self, other: "VectorAccumulator") -> "VectorAccumulator":
        out = VectorAccumulator()
        out._index = self._index + other._index
        out._vals = self._vals + other._vals
        return out

    def __len__(self):
        return sum(len(v) for v in self._vals)

    def to_dense(self, n: int) -> np.ndarray:
        out = np.zeros((n,), dtype=np.float64)
        np.add.at(out, _concat(self._index, np.int64), _concat(self._vals, np.float64))
        return out
