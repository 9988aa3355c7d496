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
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Union

import numpy as np

from earth2ice.accum import VectorAccumulator
from earth2ice.errors import ConfigurationError
from earth2ice.grid import ExchangeGrid, Grid
from earth2ice.ice import IceRegridder, InterpStyle, new_ice_regridder
from earth2ice.indexing import Indexing, check_ascending, index_to_tuple, tuple_to_index
from earth2ice.sparse_set import SparseSet

__all__ = ["GCMRegridder", "ElevationFractions"]

logger = logging.getLogger(__name__)


@dataclass
class ElevationFractions:
    """Ice coverage of the atmosphere grid

    Attrs:
        dimE: E ids of ``fhc``
        fhc: fraction of each atmosphere cell's ice in each elevation class.
            Sums to 1 over the classes of any ice covered cell.
        dimA: A ids of ``fgice``
        fgice: ice area / native area of each atmosphere cell
    """

    dimE: SparseSet
    fhc: np.ndarray
    dimA: SparseSet
    fgice: np.ndarray


class GCMRegridder:
    """The atmosphere grid, its elevation classes, and the ice sheets on it

    Example:

        >>> gcm = GCMRegridder(gridA, hcdefs, Indexing((gridA.sparse_extent, len(hcdefs))))  # doctest: +SKIP
        >>> gcm.add_sheet(new_ice_regridder("L0", "greenland", gridI, exgrid, elevI))  # doctest: +SKIP
        >>> gcm.regrid_matrices().matrix("EvI")  # doctest: +SKIP
    """

    def __init__(self, gridA: Grid, hcdefs, indexingHC: Indexing, correctA: bool = False):
        """
        Args:
            gridA: the atmosphere grid
            hcdefs: elevation class centers, strictly ascending
            indexingHC: 0-based E index scheme over ``(A id, elevation class)``
            correctA: default for :py:attr:`Params.correctA`
        """
        if indexingHC.rank != 2:
            raise ConfigurationError("indexingHC must have rank 2", rank=indexingHC.rank)
        if any(b != 0 for b in indexingHC.base):
            raise ConfigurationError("indexingHC must be 0-based", base=indexingHC.base)
        self.hcdefs = check_ascending(hcdefs)
        if indexingHC.extents[1] != self.hcdefs.size:
            raise ConfigurationError(
                "indexingHC does not match the number of elevation classes",
                extent=indexingHC.extents[1],
                nhc=self.hcdefs.size,
            )
        if indexingHC.extents[0] < gridA.sparse_extent:
            raise ConfigurationError(
                "indexingHC does not cover the atmosphere grid",
                extent=indexingHC.extents[0],
                sparse_extent=gridA.sparse_extent,
            )

        self.gridA = gridA
        self.indexingHC = indexingHC
        self.correctA = correctA
        self._sheets: Dict[str, IceRegridder] = {}
        self._handles: Dict[int, IceRegridder] = {}

    @property
    def nhc(self) -> int:
        return self.hcdefs.size

    @property
    def sparse_extentI(self) -> int:
        """Size of the global I space: all sheets' ice grids end to end"""
        return sum(sheet.gridI.sparse_extent for sheet in self._sheets.values())

    def add_sheet(self, sheet: IceRegridder) -> int:
        """Attach ``sheet``, returning its handle

        The sheet's ice ids are placed after those of every sheet already
        added.
        """
        if not sheet.name:
            raise ConfigurationError("ice sheet must have a non-empty name")
        if sheet.name in self._sheets:
            raise ConfigurationError("ice sheet name already in use", name=sheet.name)
        if sheet.gcm is not None:
            raise ConfigurationError("ice sheet already belongs to a GCMRegridder", name=sheet.name)

        sheet.offsetI = self.sparse_extentI
        sheet.handle = len(self._handles)
        sheet.gcm = self
        self._sheets[sheet.name] = sheet
        self._handles[sheet.handle] = sheet
        logger.info(
            "added ice sheet %s (handle %d, offset %d, %d overlaps)",
            sheet.name,
            sheet.handle,
            sheet.offsetI,
            len(sheet.exgrid),
        )
        return sheet.handle

    def new_sheet(
        self,
        name: str,
        gridI: Grid,
        exgrid: ExchangeGrid,
        elevI,
        interp_style: Union[str, InterpStyle] = InterpStyle.LINEAR,
    ) -> IceRegridder:
        """Build the ice regridder matching ``gridI.parameterization`` and add it"""
        sheet = new_ice_regridder(gridI.parameterization, name, gridI, exgrid, elevI, interp_style)
        self.add_sheet(sheet)
        return sheet

    def sheet(self, key: Union[str, int]) -> IceRegridder:
        """Look up a sheet by name or handle"""
        table = self._handles if isinstance(key, (int, np.integer)) else self._sheets
        try:
            return table[key]
        except KeyError:
            raise ConfigurationError("no such ice sheet", sheet=key) from None

    @property
    def sheets(self):
        return list(self._sheets.values())

    def __iter__(self) -> Iterator[IceRegridder]:
        return iter(self._sheets.values())

    def __len__(self):
        return len(self._sheets)

    def indexE(self, iA, ihc):
        return tuple_to_index(self.indexingHC, iA, ihc)

    def indexA_hc(self, iE):
        """(A id, elevation class) of E ids"""
        return index_to_tuple(self.indexingHC, iE)

    def filter_cellsA(self, keepA: Callable[[int], bool]):
        """Restrict everything to the atmosphere cells passing ``keepA``"""
        for sheet in self._sheets.values():
            sheet.filter_cellsA(keepA)
        before = self.gridA.ncells
        self.gridA.filter_cells(keepA)
        logger.info("filter_cellsA: kept %d of %d atmosphere cells", self.gridA.ncells, before)

    def regrid_matrices(self):
        from earth2ice.regrid_matrices import RegridMatrices

        return RegridMatrices(self)

    def fractions(self) -> ElevationFractions:
        """Per cell ice fractions, from the unscaled AvE matrices of all sheets"""
        dimE, dimA = SparseSet(self.indexingHC.size), SparseSet(self.gridA.sparse_extent)
        areaE, areaA = VectorAccumulator(), VectorAccumulator()
        for sheet in self._sheets.values():
            AvE = sheet.AvE()
            sheetA, sheetE = AvE.dims
            areaA.add(dimA.add(sheetA.to_sparse_array()), AvE.wM)
            areaE.add(dimE.add(sheetE.to_sparse_array()), AvE.Mw)

        iceA = areaA.to_dense(dimA.dense_extent())
        iceE = areaE.to_dense(dimE.dense_extent())

        iA_of_E, _ = self.indexA_hc(dimE.to_sparse_array())
        denom = iceA[dimA.to_dense_array(iA_of_E)]
        fhc = np.divide(iceE, denom, out=np.zeros_like(iceE), where=denom != 0)

        idsA = dimA.to_sparse_array()
        pos = self.gridA.positions(idsA)
        native = np.append(self.gridA.native_area, np.nan)[pos]
        fgice = iceA / native
        return ElevationFractions(dimE=dimE, fhc=fhc, dimA=dimA, fgice=fgice)

    def __repr__(self):
        return f"GCMRegridder(gridA={self.gridA!r}, nhc={self.nhc}, sheets={list(self._sheets)})"
