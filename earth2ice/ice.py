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
"""Per ice sheet regridding

An ice sheet contributes three elementary relations, all derived from the
exchange grid (the overlaps between ice cells and atmosphere cells):

* I <-> A: the overlap areas themselves
* I <-> E: each overlap spread over the elevation classes of its atmosphere
  cell, according to the elevation of the ice cell
* A <-> E: the same, summed over the ice cells

Ice cells with an undefined (NaN) elevation are not ice covered and are left
out of all three.
"""
import abc
import logging
from enum import Enum
from typing import Callable, Mapping, Optional, Tuple, Union

import numpy as np
import scipy.sparse

from earth2ice import _smoothing
from earth2ice.accum import TripletAccumulator
from earth2ice.errors import ConfigurationError
from earth2ice.grid import ExchangeGrid, Grid
from earth2ice.indexing import tuple_to_index
from earth2ice.sparse_set import SparseSet
from earth2ice.weighted import WeightedSparse

__all__ = [
    "InterpStyle",
    "IceRegridderType",
    "IceRegridder",
    "IceRegridderL0",
    "linterp_1d",
    "nearest_class",
    "new_ice_regridder",
]

logger = logging.getLogger(__name__)


class InterpStyle(Enum):
    """How an ice cell's elevation selects elevation classes"""

    #: all of the overlap goes to the class whose bin holds the elevation
    NEAREST = "nearest"
    #: the overlap is split between the two bracketing classes
    LINEAR = "linear"

    @classmethod
    def parse(cls, value: Union[str, "InterpStyle"]) -> "InterpStyle":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ConfigurationError("unknown interpolation style", interp_style=value) from None


class IceRegridderType(Enum):
    #: ice model fields live on the cells of the ice grid
    L0 = "L0"

    @classmethod
    def parse(cls, value: Union[str, "IceRegridderType"]) -> "IceRegridderType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            raise ConfigurationError("unknown ice sheet parameterization", parameterization=value) from None


def linterp_1d(xpoints, xx) -> Tuple[np.ndarray, np.ndarray]:
    """Weights for linear interpolation between ``xpoints``

    Finds ``i0 = i1 - 1`` with ``xpoints[i0] < xx <= xpoints[i1]``. Points off
    either end continue the slope of the first/last bracket, so the weights
    always sum to 1 but may fall outside [0, 1].

    Args:
        xpoints: (n,) ascending, n >= 2
        xx: scalar or array of query points

    Returns:
        indices, weights: each shaped ``xx.shape + (2,)``

    Examples:

        >>> indices, weights = linterp_1d([0.0, 100.0, 200.0], 50.0)
        >>> indices.tolist(), weights.tolist()
        ([0, 1], [0.5, 0.5])
    """
    xpoints = np.asarray(xpoints, dtype=np.float64)
    n = xpoints.size
    if n < 2:
        raise ConfigurationError("linear interpolation needs at least two points", npoints=n)

    xx = np.asarray(xx, dtype=np.float64)
    i1 = np.searchsorted(xpoints, xx, side="left")
    i1 = np.clip(i1, 1, n - 1)
    i0 = i1 - 1

    ratio = (xx - xpoints[i0]) / (xpoints[i1] - xpoints[i0])
    indices = np.stack([i0, i1], axis=-1)
    weights = np.stack([1.0 - ratio, ratio], axis=-1)
    return indices, weights


def nearest_class(xpoints, xx) -> np.ndarray:
    """Index of the elevation class whose bin holds ``xx``

    Bin edges are halfway between adjacent class centers. A value exactly on
    an edge goes to the lower class; values off either end go to the first or
    last class.
    """
    xpoints = np.asarray(xpoints, dtype=np.float64)
    edges = 0.5 * (xpoints[1:] + xpoints[:-1])
    return np.searchsorted(edges, np.asarray(xx, dtype=np.float64), side="left")


def _as_elevation_array(elevI, n: int) -> np.ndarray:
    if isinstance(elevI, Mapping):
        out = np.full((n,), np.nan)
        for index, value in elevI.items():
            if index < 0 or index >= n:
                raise ConfigurationError("elevation given for an id outside the ice grid", index=index, extent=n)
            out[index] = np.nan if value is None else value
        return out

    out = np.array(elevI, dtype=np.float64)
    if out.shape != (n,):
        raise ConfigurationError("elevI must have one entry per ice grid id", expected=(n,), got=out.shape)
    return out


def _weighted(rows, cols, vals, row_extent: Optional[int] = None, col_extent: Optional[int] = None):
    """Compact sparse triplets into a WeightedSparse with fresh dimensions"""
    dim0, dim1 = SparseSet(row_extent), SparseSet(col_extent)
    r = dim0.add(rows)
    c = dim1.add(cols)
    M = TripletAccumulator().add(r, c, vals).to_coo((dim0.dense_extent(), dim1.dense_extent()))
    return WeightedSparse(
        M=M,
        wM=np.asarray(M.sum(axis=1)).ravel(),
        Mw=np.asarray(M.sum(axis=0)).ravel(),
        dims=(dim0, dim1),
    )


class IceRegridder(abc.ABC):
    """One ice sheet: its grid, exchange grid and elevations

    Matrices are returned unscaled (entries are areas), in the sheet's own
    dense indexing. Ice ids are expressed in the global I space, i.e. shifted
    by the sheet's ``offsetI``.
    """

    type: IceRegridderType

    def __init__(
        self,
        name: str,
        gridI: Grid,
        exgrid: ExchangeGrid,
        elevI,
        interp_style: Union[str, InterpStyle] = InterpStyle.LINEAR,
    ):
        """
        Args:
            name: unique name of the sheet; defaults to ``gridI.name``
            gridI: the ice grid
            exgrid: overlaps between ``gridI`` and the atmosphere grid
            elevI: elevation per ice grid id, as a (gridI.sparse_extent,) array
                or a mapping. NaN or missing means not ice covered.
            interp_style: see :py:class:`InterpStyle`
        """
        self.name = name or gridI.name
        self.gridI = gridI
        self.exgrid = exgrid
        self.interp_style = InterpStyle.parse(interp_style)
        self.elevI = _as_elevation_array(elevI, gridI.sparse_extent)

        if len(exgrid) and (exgrid.iI.min() < 0 or exgrid.iI.max() >= gridI.sparse_extent):
            raise ConfigurationError(
                "exchange grid refers to ice ids outside the ice grid", sheet=self.name, extent=gridI.sparse_extent
            )

        # set by GCMRegridder.add_sheet
        self.gcm = None
        self.handle: Optional[int] = None
        self.offsetI = 0

    def _require_gcm(self):
        if self.gcm is None:
            raise ConfigurationError("ice sheet has not been added to a GCMRegridder", sheet=self.name)
        return self.gcm

    @abc.abstractmethod
    def overlaps(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """Ice covered exchange grid entries

        Returns:
            iI, iA, area, elevation: one entry per kept overlap
        """

    def _classes(self, elev: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """(n, k) elevation class indices and weights of each elevation"""
        hcdefs = self._require_gcm().hcdefs
        if self.interp_style == InterpStyle.NEAREST or hcdefs.size == 1:
            return nearest_class(hcdefs, elev)[:, None], np.ones((elev.size, 1))
        return linterp_1d(hcdefs, elev)

    def _binned(self):
        """Overlaps spread over elevation classes

        Returns:
            iI, iA, iE, area: one entry per nonzero (overlap, class) pair
        """
        gcm = self._require_gcm()
        iI, iA, area, elev = self.overlaps()
        ihc, w = self._classes(elev)
        k = ihc.shape[1]

        iI = np.repeat(iI, k)
        iA = np.repeat(iA, k)
        iE = tuple_to_index(gcm.indexingHC, iA, ihc.ravel())
        area = (area[:, None] * w).ravel()

        nonzero = area != 0
        return iI[nonzero], iA[nonzero], iE[nonzero], area[nonzero]

    def IvA(self) -> WeightedSparse:
        """Raw I x A overlap matrix"""
        gcm = self._require_gcm()
        iI, iA, area, _ = self.overlaps()
        return _weighted(self.offsetI + iI, iA, area, gcm.sparse_extentI, gcm.gridA.sparse_extent)

    def IvE(self) -> WeightedSparse:
        """Raw I x E matrix"""
        gcm = self._require_gcm()
        iI, _, iE, area = self._binned()
        return _weighted(self.offsetI + iI, iE, area, gcm.sparse_extentI, gcm.indexingHC.size)

    def AvE(self) -> WeightedSparse:
        """Raw A x E matrix: ice area of each atmosphere cell in each class"""
        gcm = self._require_gcm()
        _, iA, iE, area = self._binned()
        return _weighted(iA, iE, area, gcm.gridA.sparse_extent, gcm.indexingHC.size)

    def wAvAp(self) -> Tuple[np.ndarray, np.ndarray]:
        """Diagonal of [Atmosphere] <- [Atmosphere projected]

        Returns:
            A ids, native / projected area of each
        """
        gridA = self._require_gcm().gridA
        return gridA.index.copy(), gridA.area_ratio()

    def wEvEp(self) -> Tuple[np.ndarray, np.ndarray]:
        """:py:meth:`wAvAp` replicated over the elevation classes of each cell"""
        gcm = self._require_gcm()
        iA, ratio = self.wAvAp()
        ihc = np.arange(gcm.nhc)
        iE = tuple_to_index(gcm.indexingHC, iA[:, None], ihc[None, :])
        return iE.ravel(), np.repeat(ratio, gcm.nhc)

    def coordinates(self, dimI: SparseSet) -> np.ndarray:
        """(n, 3) x, y, elevation of the ice cells in ``dimI`` (dense order)"""
        ids = dimI.to_sparse_array() - self.offsetI
        if not self.gridI.has_centroids:
            raise ConfigurationError("smoothing needs ice grid centroids", sheet=self.name)
        pos = self.gridI.positions(ids)
        if np.any(pos < 0):
            raise ConfigurationError("exchange grid refers to cells missing from the ice grid", sheet=self.name)
        return np.stack([self.gridI.x[pos], self.gridI.y[pos], self.elevI[ids]], axis=-1)

    def smoothing_matrix(self, dimI: SparseSet, wI: np.ndarray, sigma) -> scipy.sparse.csr_matrix:
        """Row stochastic Gaussian kernel over the ice cells of ``dimI``"""
        return _smoothing.gaussian_smoothing_matrix(self.coordinates(dimI), wI, sigma)

    def filter_cellsA(self, keepA: Callable[[int], bool]):
        """Drop overlaps with atmosphere cells failing ``keepA``, and the ice
        cells left without any overlap"""
        unique_A = np.unique(self.exgrid.iA)
        good_A = unique_A[np.fromiter((bool(keepA(int(a))) for a in unique_A), dtype=bool, count=unique_A.size)]
        mask = np.isin(self.exgrid.iA, good_A)
        self.exgrid.filter(mask)

        good_I = set(np.unique(self.exgrid.iI).tolist())
        dropped = np.array([i for i in self.gridI.index.tolist() if i not in good_I], dtype=np.int64)
        self.gridI.filter_cells(lambda i: i in good_I)
        self.elevI[dropped] = np.nan
        logger.debug("sheet %s: kept %d overlaps, dropped %d ice cells", self.name, len(self.exgrid), len(dropped))

    def __repr__(self):
        return f"{type(self).__name__}(name={self.name!r}, gridI={self.gridI!r}, interp_style={self.interp_style})"


class IceRegridderL0(IceRegridder):
    """Ice model fields are constant on each ice grid cell"""

    type = IceRegridderType.L0

    def overlaps(self):
        ex = self.exgrid
        elev = self.elevI[ex.iI]
        keep = ~np.isnan(elev)
        logger.debug("sheet %s: %d of %d overlaps are ice covered", self.name, int(keep.sum()), keep.size)
        return ex.iI[keep], ex.iA[keep], ex.area[keep], elev[keep]


_REGRIDDERS = {
    IceRegridderType.L0: IceRegridderL0,
}


def new_ice_regridder(parameterization: Union[str, IceRegridderType], *args, **kwargs) -> IceRegridder:
    """Construct the ice regridder for ``parameterization``

    Examples:

        >>> sheet = new_ice_regridder("L0", "greenland", gridI, exgrid, elevI)  # doctest: +SKIP
    """
    return _REGRIDDERS[IceRegridderType.parse(parameterization)](*args, **kwargs)
