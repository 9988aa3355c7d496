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
"""Assembly of regridding matrices over all ice sheets

Each sheet's contribution is built in the sheet's own dense indexing and
goes through, in order:

1. the elementary (unscaled) matrix and its weights
2. Gaussian smoothing on the ice side, when any sigma is nonzero
3. column rescaling so column sums still equal the input weights, after
   which the output weights are the new row sums
4. the native / projected area correction on the A or E side

then is translated into the shared dimensions and added to the others. Row
scaling (dividing by the output weights) happens once, on the sum.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
import scipy.sparse

from earth2ice.accum import TripletAccumulator, VectorAccumulator
from earth2ice.errors import ConfigurationError
from earth2ice.ice import IceRegridder
from earth2ice.sparse_set import SparseSet
from earth2ice.weighted import WeightedSparse

__all__ = ["Params", "RegridMatrices", "MATRIX_NAMES", "parse_matrix_name"]

logger = logging.getLogger(__name__)

MATRIX_NAMES = ("AvI", "EvI", "IvE", "IvA", "AvE")


@dataclass(frozen=True)
class Params:
    """Options of a matrix build

    Attrs:
        scale: divide each row by its weight, so the matrix maps fields to
            fields. Otherwise entries are areas.
        correctA: correct for the area distortion of the ice sheet's
            projection on the A/E side
        sigma: Gaussian smoothing widths along x, y and elevation; 0 disables
            smoothing along that axis
        conserve: keep column sums equal to the input weights after smoothing
    """

    scale: bool = True
    correctA: bool = False
    sigma: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    conserve: bool = True

    def __post_init__(self):
        try:
            sigma = tuple(float(s) for s in self.sigma)
        except (TypeError, ValueError):
            raise ConfigurationError("sigma must have 3 components (x, y, elevation)", sigma=self.sigma) from None
        if len(sigma) != 3:
            raise ConfigurationError("sigma must have 3 components (x, y, elevation)", sigma=sigma)
        if any(s < 0 for s in sigma):
            raise ConfigurationError("sigma must be non-negative", sigma=sigma)
        object.__setattr__(self, "sigma", sigma)

    @property
    def smooth(self) -> bool:
        return any(s != 0 for s in self.sigma)


def parse_matrix_name(name: str) -> Tuple[str, str]:
    """``"EvI"`` -> ``("E", "I")``"""
    if name not in MATRIX_NAMES:
        raise ConfigurationError("unknown matrix name", name=name, supported=MATRIX_NAMES)
    row, col = name.split("v")
    return row, col


def _elementary(sheet: IceRegridder, name: str) -> WeightedSparse:
    if name == "IvA":
        return sheet.IvA()
    if name == "AvI":
        return sheet.IvA().T
    if name == "IvE":
        return sheet.IvE()
    if name == "EvI":
        return sheet.IvE().T
    return sheet.AvE()


def _smooth(sheet: IceRegridder, result: WeightedSparse, row: str, sigma) -> WeightedSparse:
    M = result.M.tocsr()
    if row == "I":
        # IvX: diag(wI) S diag(1/wI) M
        wI = result.wM
        S = sheet.smoothing_matrix(result.dims[0], wI, sigma)
        inv = np.divide(1.0, wI, out=np.zeros_like(wI), where=wI != 0)
        M = scipy.sparse.diags(wI) @ S @ scipy.sparse.diags(inv) @ M
    else:
        # XvI: M S
        S = sheet.smoothing_matrix(result.dims[1], result.Mw, sigma)
        M = M @ S
    return WeightedSparse(M=M.tocoo(), wM=result.wM, Mw=result.Mw, dims=result.dims)


def _conserve(result: WeightedSparse) -> WeightedSparse:
    M = result.M.tocsc()
    colsum = np.asarray(M.sum(axis=0)).ravel()
    factor = np.divide(result.Mw, colsum, out=np.ones_like(colsum), where=colsum != 0)
    M = M @ scipy.sparse.diags(factor)
    wM = np.asarray(M.sum(axis=1)).ravel()
    return WeightedSparse(M=M.tocoo(), wM=wM, Mw=result.Mw, dims=result.dims)


def _ratios(sheet: IceRegridder, space: str, dim: SparseSet) -> np.ndarray:
    """native / projected area of each dense id of ``dim``"""
    if space == "A":
        ids, ratio = sheet.wAvAp()
        extent = sheet.gcm.gridA.sparse_extent
    else:
        ids, ratio = sheet.wEvEp()
        extent = sheet.gcm.indexingHC.size
    full = np.ones((extent,))
    full[ids] = ratio
    return full[dim.to_sparse_array()]


def _correct_area(sheet: IceRegridder, result: WeightedSparse, row: str, col: str, scale: bool) -> WeightedSparse:
    M = result.M.tocsr()
    wM, Mw = result.wM, result.Mw
    if row in ("A", "E"):
        r = _ratios(sheet, row, result.dims[0])
        before = np.asarray(M.sum(axis=0)).ravel()
        M = scipy.sparse.diags(r) @ M
        wM = wM * r
        # input weights follow the column sums; for AvE this is wEvEp
        after = np.asarray(M.sum(axis=0)).ravel()
        Mw = Mw * np.divide(after, before, out=np.ones_like(before), where=before != 0)
    else:
        # IvA, IvE: the I row weights are exact, so a scaled matrix keeps M
        r = _ratios(sheet, col, result.dims[1])
        if not scale:
            M = M @ scipy.sparse.diags(r)
        Mw = Mw * r
    return WeightedSparse(M=M.tocoo(), wM=wM, Mw=Mw, dims=result.dims)


class RegridMatrices:
    """Factory of regridding matrices for a :py:class:`GCMRegridder`

    Matrices are built on demand and not cached; the GCMRegridder may be
    modified (e.g. with ``filter_cellsA``) between calls.
    """

    def __init__(self, gcm):
        self.gcm = gcm

    def _extent(self, space: str) -> int:
        if space == "I":
            return self.gcm.sparse_extentI
        if space == "A":
            return self.gcm.gridA.sparse_extent
        return self.gcm.indexingHC.size

    def matrix(
        self,
        name: str,
        dims: Optional[Sequence[SparseSet]] = None,
        params: Optional[Params] = None,
    ) -> WeightedSparse:
        """Build the matrix ``name``, one of ``AvI, EvI, IvE, IvA, AvE``

        Args:
            name: matrix name, output space first
            dims: (row, column) dimensions to extend. Ids already present keep
                their dense ids, so results over several calls can share
                dimensions. New ones are created if omitted.
            params: build options, defaults to ``Params(correctA=gcm.correctA)``

        Returns:
            the matrix, with its dimensions and weights
        """
        row, col = parse_matrix_name(name)
        if params is None:
            params = Params(correctA=self.gcm.correctA)
        if dims is None:
            dims = (SparseSet(self._extent(row)), SparseSet(self._extent(col)))
        if len(dims) != 2:
            raise ConfigurationError("dims must be a (row, column) pair", got=len(dims))
        dim0, dim1 = dims
        smooth = params.smooth and "I" in (row, col)

        M = TripletAccumulator()
        wM = VectorAccumulator()
        Mw = VectorAccumulator()
        for sheet in self.gcm:
            result = _elementary(sheet, name)
            if smooth:
                result = _smooth(sheet, result, row, params.sigma)
            if params.conserve:
                result = _conserve(result)
            if params.correctA:
                result = _correct_area(sheet, result, row, col, params.scale)

            sheet0, sheet1 = result.dims
            rows = dim0.add(sheet0.to_sparse_array())
            cols = dim1.add(sheet1.to_sparse_array())
            coo = result.M.tocoo()
            M.add(rows[coo.row], cols[coo.col], coo.data)
            wM.add(rows, result.wM)
            Mw.add(cols, result.Mw)
            logger.debug("%s: sheet %s contributed %d entries", name, sheet.name, coo.nnz)

        shape = (dim0.dense_extent(), dim1.dense_extent())
        matrix = M.to_coo(shape)
        weights0 = wM.to_dense(shape[0])
        weights1 = Mw.to_dense(shape[1])

        if params.scale:
            zero = weights0 == 0
            degenerate = np.unique(matrix.row[zero[matrix.row]])
            if degenerate.size:
                logger.warning("%s: %d rows with entries but zero weight dropped", name, degenerate.size)
            inv = np.divide(1.0, weights0, out=np.zeros_like(weights0), where=~zero)
            keep = ~zero[matrix.row]
            matrix = scipy.sparse.coo_matrix(
                (matrix.data[keep] * inv[matrix.row[keep]], (matrix.row[keep], matrix.col[keep])), shape=shape
            )

        logger.info("built %s: shape=%s nnz=%d sheets=%d", name, shape, matrix.nnz, len(self.gcm))
        return WeightedSparse(M=matrix, wM=weights0, Mw=weights1, dims=(dim0, dim1))
