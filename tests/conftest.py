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
import numpy as np
import pytest

from earth2ice import ExchangeGrid, GCMRegridder, Grid, Indexing, new_ice_regridder

HCDEFS = [0.0, 100.0, 200.0]


def make_gcm(correctA=False, proj_area=(8.0, 8.0, 8.0, 8.0)):
    """4 atmosphere cells of area 10 (projected area 8 by default), 3 elevation classes"""
    gridA = Grid("atmosphere", index=np.arange(4), native_area=np.full(4, 10.0), proj_area=list(proj_area))
    return GCMRegridder(gridA, HCDEFS, Indexing((4, len(HCDEFS))), correctA=correctA)


def greenland(elevI=(0.0, 0.0, 200.0, 200.0), interp_style="nearest", iA=(0, 0, 0, 0)):
    """4 unit ice cells on a 2x2 square"""
    gridI = Grid(
        "greenland",
        index=np.arange(4),
        native_area=np.ones(4),
        x=[0.0, 1.0, 0.0, 1.0],
        y=[0.0, 0.0, 1.0, 1.0],
    )
    exgrid = ExchangeGrid(iI=np.arange(4), iA=list(iA), area=np.ones(4))
    return new_ice_regridder("L0", "greenland", gridI, exgrid, np.array(elevI), interp_style)


def antarctica(interp_style="linear"):
    """2 ice cells over atmosphere cells 2 and 3"""
    gridI = Grid("antarctica", index=[0, 1], native_area=[1.0, 1.0], x=[5.0, 6.0], y=[5.0, 5.0])
    exgrid = ExchangeGrid(iI=[0, 0, 1], iA=[2, 3, 3], area=[0.5, 0.5, 1.0])
    return new_ice_regridder("L0", "antarctica", gridI, exgrid, {0: 50.0, 1: 150.0}, interp_style)


def svalbard(interp_style="linear"):
    """5 ice cells of unequal area at irregular positions, two of them split between A cells"""
    gridI = Grid(
        "svalbard",
        index=np.arange(5),
        native_area=[1.0, 2.0, 0.5, 3.0, 1.0],
        x=[0.0, 1.3, 0.4, 2.2, 3.1],
        y=[0.0, 0.2, 1.7, 0.9, 2.5],
    )
    exgrid = ExchangeGrid(
        iI=[0, 1, 1, 2, 3, 3, 4],
        iA=[0, 0, 1, 0, 1, 2, 2],
        area=[1.0, 1.2, 0.8, 0.5, 1.0, 2.0, 1.0],
    )
    elevI = np.array([50.0, 50.0, 150.0, 150.0, 50.0])
    return new_ice_regridder("L0", "svalbard", gridI, exgrid, elevI, interp_style)


def to_global_dense(result):
    """Matrix indexed by sparse ids"""
    arrays = result.to_sparse_arrays()
    dim0, dim1 = result.dims
    out = np.zeros((dim0.sparse_extent(), dim1.sparse_extent()))
    np.add.at(out, (arrays["row"], arrays["col"]), arrays["value"])
    return out


@pytest.fixture()
def one_sheet():
    gcm = make_gcm()
    gcm.add_sheet(greenland())
    return gcm


@pytest.fixture()
def two_sheets():
    gcm = make_gcm()
    gcm.add_sheet(greenland())
    gcm.add_sheet(antarctica())
    return gcm


@pytest.fixture()
def uneven():
    """svalbard on atmosphere cells with different projection distortions"""
    gcm = make_gcm(proj_area=(8.0, 5.0, 9.0, 10.0))
    gcm.add_sheet(svalbard())
    return gcm


@pytest.fixture(params=["two_sheets", "uneven"])
def any_gcm(request):
    return request.getfixturevalue(request.param)
