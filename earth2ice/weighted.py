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
import logging
import math
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

import einops
import numpy as np
import scipy.sparse
import torch

from earth2ice.accum import TripletAccumulator, VectorAccumulator
from earth2ice.errors import ConfigurationError, DataIntegrityError
from earth2ice.sparse_set import SparseSet

__all__ = ["WeightedSparse", "SparseRegridder", "combine_chunks"]

logger = logging.getLogger(__name__)


@dataclass
class WeightedSparse:
    """A regridding matrix with its weight vectors

    Everything is stored in dense indexing; ``dims`` translates back to the
    global (sparse) cell ids.

    Attrs:
        M: (nrow, ncol) matrix, duplicates summed
        wM: (nrow,) weight of each output (row) cell
        Mw: (ncol,) weight of each input (column) cell
        dims: (row dimension, column dimension)
    """

    M: scipy.sparse.coo_matrix
    wM: np.ndarray
    Mw: np.ndarray
    dims: Tuple[SparseSet, SparseSet]

    @property
    def shape(self) -> Tuple[int, int]:
        return self.M.shape

    @property
    def nnz(self) -> int:
        return self.M.nnz

    @property
    def T(self) -> "WeightedSparse":
        return WeightedSparse(M=self.M.T.tocoo(), wM=self.Mw, Mw=self.wM, dims=(self.dims[1], self.dims[0]))

    def to_sparse_arrays(self, fill: float = math.nan) -> Dict[str, np.ndarray]:
        """Express the result in sparse (global) ids

        Returns:
            dict with ``wM`` and ``Mw`` over the full sparse extents (``fill``
            where no dense id exists), ``row``, ``col``, ``value`` triplets,
            and the ``dim0``/``dim1`` dense -> sparse tables.
        """
        dim0, dim1 = self.dims
        M = self.M.tocoo()

        wM = np.full((dim0.sparse_extent(),), fill)
        wM[dim0.to_sparse_array()] = self.wM
        Mw = np.full((dim1.sparse_extent(),), fill)
        Mw[dim1.to_sparse_array()] = self.Mw

        return {
            "wM": wM,
            "row": dim0.to_sparse_array(M.row),
            "col": dim1.to_sparse_array(M.col),
            "value": M.data.copy(),
            "Mw": Mw,
            "dim0": dim0.to_sparse_array(),
            "dim1": dim1.to_sparse_array(),
        }

    def apply(
        self, x, fill: float = math.nan, ignore_nan: bool = False, out_extent: Optional[int] = None
    ) -> np.ndarray:
        """Regrid ``x``

        Args:
            x: (..., n) field indexed by column sparse id
            fill: value for output ids not reached by the matrix, and for
                rows with zero weight
            ignore_nan: drop NaN inputs from the sums instead of propagating
            out_extent: length of the output's last axis, defaults to the
                sparse extent of the row dimension

        Returns:
            (..., out_extent) array indexed by row sparse id
        """
        dim0, dim1 = self.dims
        x = np.asarray(x, dtype=np.float64)
        if out_extent is None:
            out_extent = dim0.sparse_extent()

        *shape, n = x.shape
        cols = dim1.to_sparse_array()
        if cols.size and cols.max() >= n:
            raise ConfigurationError("x is too short", n=n, max_id=int(cols.max()))

        x_d = x.reshape(-1, n)[:, cols]
        if ignore_nan:
            x_d = np.where(np.isnan(x_d), 0.0, x_d)

        y_d = (self.M.tocsr() @ x_d.T).T
        y_d[:, self.wM == 0] = fill

        y = np.full((y_d.shape[0], out_extent), fill)
        y[:, dim0.to_sparse_array()] = y_d
        return y.reshape(shape + [out_extent])

    def to_regridder(self, fill_value: float = math.nan, ignore_nan: bool = False) -> "SparseRegridder":
        M = self.M.tocoo()
        dim0, dim1 = self.dims
        return SparseRegridder(
            row=torch.from_numpy(M.row.astype(np.int64)),
            col=torch.from_numpy(M.col.astype(np.int64)),
            value=torch.from_numpy(M.data.astype(np.float64)),
            in_index=torch.from_numpy(dim1.to_sparse_array()),
            out_index=torch.from_numpy(dim0.to_sparse_array()),
            valid=torch.from_numpy(self.wM != 0),
            out_extent=dim0.sparse_extent(),
            fill_value=fill_value,
            ignore_nan=ignore_nan,
        )


class SparseRegridder(torch.nn.Module):
    """Apply a regridding matrix to fields in sparse (global) indexing

    Forward:
        (*, n_in) -> (*, out_extent)
    """

    def __init__(
        self,
        row: torch.Tensor,
        col: torch.Tensor,
        value: torch.Tensor,
        in_index: torch.Tensor,
        out_index: torch.Tensor,
        valid: torch.Tensor,
        out_extent: int,
        fill_value: float = math.nan,
        ignore_nan: bool = False,
    ):
        super().__init__()
        self.fill_value = fill_value
        self.ignore_nan = ignore_nan
        self.register_buffer("row", row)
        self.register_buffer("col", col)
        self.register_buffer("value", value)
        self.register_buffer("in_index", in_index)
        self.register_buffer("out_index", out_index)
        self.register_buffer("valid", valid)
        self.register_buffer("out_extent", torch.tensor(out_extent))

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        x, packed_shape = einops.pack([x], "* n")
        x_d = x[:, self.in_index]
        if self.ignore_nan:
            x_d = torch.where(torch.isnan(x_d), torch.zeros_like(x_d), x_d)

        # ADD policy: every triplet contributes, duplicates included
        contrib = x_d[:, self.col] * self.value.to(x.dtype)
        y_d = torch.zeros(x.shape[0], self.valid.numel(), dtype=x.dtype, device=x.device)
        y_d.index_add_(1, self.row, contrib)
        y_d = torch.where(self.valid, y_d, torch.full_like(y_d, self.fill_value))

        out = torch.full((x.shape[0], int(self.out_extent)), self.fill_value, dtype=x.dtype, device=x.device)
        out[:, self.out_index] = y_d
        (out,) = einops.unpack(out, packed_shape, "* n")
        return out

    @staticmethod
    def from_state_dict(
        d: Dict[str, torch.Tensor], fill_value: float = math.nan, ignore_nan: bool = False
    ) -> "SparseRegridder":
        regridder = SparseRegridder(
            row=torch.empty_like(d["row"]),
            col=torch.empty_like(d["col"]),
            value=torch.empty_like(d["value"]),
            in_index=torch.empty_like(d["in_index"]),
            out_index=torch.empty_like(d["out_index"]),
            valid=torch.empty_like(d["valid"]),
            out_extent=int(d["out_extent"]),
            fill_value=fill_value,
            ignore_nan=ignore_nan,
        )
        regridder.load_state_dict(d)
        return regridder


def combine_chunks(results: Sequence[WeightedSparse], check_nnz: bool = True) -> WeightedSparse:
    """Merge results built independently on disjoint chunks of the atmosphere grid

    Triplets and weights are matched up by sparse id and summed (ADD).

    Raises:
        DataIntegrityError: if ``check_nnz`` and the merged matrix has a
            different number of nonzeros than the chunks together, i.e. the
            chunks were not disjoint.
    """
    dim0, dim1 = SparseSet(), SparseSet()
    M = TripletAccumulator()
    wM = VectorAccumulator()
    Mw = VectorAccumulator()

    nnz = 0
    extents = [0, 0]
    for result in results:
        rdim0, rdim1 = result.dims
        coo = result.M.tocoo()
        nnz += coo.nnz
        extents = [max(extents[0], rdim0.sparse_extent()), max(extents[1], rdim1.sparse_extent())]

        wM.add(dim0.add(rdim0.to_sparse_array()), result.wM)
        Mw.add(dim1.add(rdim1.to_sparse_array()), result.Mw)
        M.add(
            dim0.to_dense_array(rdim0.to_sparse_array(coo.row)),
            dim1.to_dense_array(rdim1.to_sparse_array(coo.col)),
            coo.data,
        )

    dim0.set_sparse_extent(extents[0])
    dim1.set_sparse_extent(extents[1])
    matrix = M.to_coo((dim0.dense_extent(), dim1.dense_extent()))
    logger.info("combined %d chunks: nnz=%d", len(results), matrix.nnz)

    if check_nnz and matrix.nnz != nnz:
        raise DataIntegrityError("merged nonzero count does not match the chunks", merged=matrix.nnz, chunks=nnz)

    return WeightedSparse(
        M=matrix,
        wM=wM.to_dense(dim0.dense_extent()),
        Mw=Mw.to_dense(dim1.dense_extent()),
        dims=(dim0, dim1),
    )
