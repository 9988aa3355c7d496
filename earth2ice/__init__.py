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
from earth2ice.accum import TripletAccumulator, VectorAccumulator
from earth2ice.errors import ConfigurationError, DataIntegrityError, RegridError
from earth2ice.gcm import ElevationFractions, GCMRegridder
from earth2ice.grid import Cell, ExchangeGrid, Grid
from earth2ice.ice import (
    IceRegridder,
    IceRegridderL0,
    IceRegridderType,
    InterpStyle,
    linterp_1d,
    new_ice_regridder,
)
from earth2ice.indexing import Indexing, elevation_classes, index_to_tuple, tuple_to_index
from earth2ice.regrid_matrices import Params, RegridMatrices
from earth2ice.sparse_set import SparseSet
from earth2ice.weighted import SparseRegridder, WeightedSparse, combine_chunks

__all__ = [
    "Cell",
    "ConfigurationError",
    "DataIntegrityError",
    "ElevationFractions",
    "ExchangeGrid",
    "GCMRegridder",
    "Grid",
    "IceRegridder",
    "IceRegridderL0",
    "IceRegridderType",
    "Indexing",
    "InterpStyle",
    "Params",
    "RegridError",
    "RegridMatrices",
    "SparseRegridder",
    "SparseSet",
    "TripletAccumulator",
    "VectorAccumulator",
    "WeightedSparse",
    "combine_chunks",
    "elevation_classes",
    "index_to_tuple",
    "linterp_1d",
    "new_ice_regridder",
    "tuple_to_index",
]
