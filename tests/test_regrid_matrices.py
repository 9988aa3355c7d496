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

import numpy as np
import pytest
from conftest import antarctica, greenland, make_gcm, to_global_dense

from earth2ice import ConfigurationError, Params, SparseSet
from earth2ice.regrid_matrices import MATRIX_NAMES, parse_matrix_name

SMOOTH = (1.0, 1.0, 0.0)
SMOOTH_3D = (1.5, 1.5, 100.0)


def _row_sums(result):
    return np.asarray(result.M.sum(axis=1)).ravel()


def _col_sums(result):
    return np.asarray(result.M.sum(axis=0)).ravel()


def test_parse_matrix_name():
    assert parse_matrix_name("EvI") == ("E", "I")
    for name in ["IvI", "AvA", "EvA", "", "avi"]:
        with pytest.raises(ConfigurationError):
            parse_matrix_name(name)


def test_unknown_matrix(two_sheets):
    with pytest.raises(ConfigurationError):
        two_sheets.regrid_matrices().matrix("IvI")


@pytest.mark.parametrize("sigma", [(1.0, 1.0), (1.0, 1.0, 1.0, 1.0), (-1.0, 0.0, 0.0), 1.0, ("a", 0, 0)])
def test_params_sigma(sigma):
    with pytest.raises(ConfigurationError):
        Params(sigma=sigma)


def test_params_defaults():
    params = Params()
    assert params == Params(scale=True, correctA=False, sigma=(0, 0, 0), conserve=True)
    assert not params.smooth
    assert Params(sigma=[0, 0, 5]).smooth


@pytest.mark.parametrize("name", MATRIX_NAMES)
@pytest.mark.parametrize("sigma", [(0.0, 0.0, 0.0), SMOOTH, SMOOTH_3D])
@pytest.mark.parametrize("correctA", [False, True])
def test_conservation(any_gcm, name, sigma, correctA):
    params = Params(scale=False, sigma=sigma, correctA=correctA)
    result = any_gcm.regrid_matrices().matrix(name, params=params)
    np.testing.assert_allclose(_col_sums(result), result.Mw, rtol=1e-12)


@pytest.mark.parametrize("name", MATRIX_NAMES)
def test_unscaled_row_sums_are_weights(any_gcm, name):
    result = any_gcm.regrid_matrices().matrix(name, params=Params(scale=False))
    np.testing.assert_allclose(_row_sums(result), result.wM, rtol=1e-12)


@pytest.mark.parametrize("name", MATRIX_NAMES)
@pytest.mark.parametrize("sigma", [(0.0, 0.0, 0.0), SMOOTH, SMOOTH_3D])
@pytest.mark.parametrize("correctA", [False, True])
@pytest.mark.parametrize("conserve", [False, True])
def test_row_normalization(any_gcm, name, sigma, correctA, conserve):
    params = Params(sigma=sigma, correctA=correctA, conserve=conserve)
    result = any_gcm.regrid_matrices().matrix(name, params=params)
    nonzero = result.wM != 0
    assert nonzero.any()
    np.testing.assert_allclose(_row_sums(result)[nonzero], 1.0, rtol=1e-12)


@pytest.mark.parametrize("name", MATRIX_NAMES)
def test_constant_field_is_preserved_with_correctA(name):
    gcm = make_gcm()
    gcm.add_sheet(greenland())
    result = gcm.regrid_matrices().matrix(name, params=Params(correctA=True))
    y = result.apply(np.ones(result.dims[1].sparse_extent()))
    np.testing.assert_allclose(y[result.dims[0].to_sparse_array()], 1.0)


def test_smoothing_moves_mass_on_uneven_cells(uneven):
    rm = uneven.regrid_matrices()
    plain = rm.matrix("AvI", params=Params(conserve=False))
    smooth = rm.matrix("AvI", params=Params(sigma=SMOOTH))
    assert smooth.nnz > plain.nnz
    # conservation changes the output weights, the input weights stay the ice areas
    np.testing.assert_allclose(smooth.Mw, plain.Mw)
    assert not np.allclose(smooth.wM, plain.wM)
    np.testing.assert_allclose(smooth.wM.sum(), plain.wM.sum())


def test_two_disjoint_sheets_block_structure(two_sheets):
    result = two_sheets.regrid_matrices().matrix("AvI")
    dense = to_global_dense(result)
    assert dense.shape == (4, 6)

    # no cross terms between greenland (A 0, I 0-3) and antarctica (A 2-3, I 4-5)
    np.testing.assert_array_equal(dense[0, 4:], 0.0)
    np.testing.assert_array_equal(dense[2:, :4], 0.0)
    np.testing.assert_allclose(dense[0, :4], 0.25)
    np.testing.assert_allclose(dense[2, 4:], [1.0, 0.0])
    np.testing.assert_allclose(dense[3, 4:], [1 / 3, 2 / 3])

    unscaled = to_global_dense(two_sheets.regrid_matrices().matrix("AvI", params=Params(scale=False)))
    expected = sum(to_global_dense(sheet.IvA().T) for sheet in two_sheets)
    np.testing.assert_allclose(unscaled, expected)


def test_four_cells_two_classes_nearest(one_sheet):
    result = one_sheet.regrid_matrices().matrix("EvI")
    iE = result.dims[0].to_sparse_array()
    assert sorted(iE.tolist()) == [one_sheet.indexE(0, 0), one_sheet.indexE(0, 2)]

    np.testing.assert_array_equal(result.M.tocsr().getnnz(axis=1), [2, 2])
    np.testing.assert_allclose(result.M.data, 0.5)
    # each class holds half of the atmosphere cell's ice
    np.testing.assert_allclose(result.wM / result.wM.sum(), 0.5)


@pytest.mark.parametrize("name", MATRIX_NAMES)
def test_masked_cell_is_excluded(name):
    gcm = make_gcm()
    gcm.add_sheet(greenland(elevI=(0.0, np.nan, 200.0, 200.0)))
    result = gcm.regrid_matrices().matrix(name, params=Params(scale=False))

    row, col = parse_matrix_name(name)
    if row == "I":
        assert 1 not in result.dims[0]
    if col == "I":
        assert 1 not in result.dims[1]
    assert result.M.sum() == pytest.approx(3.0)
    assert result.wM.sum() == pytest.approx(3.0)


def test_smoothing_spreads_within_a_class():
    gcm = make_gcm()
    gcm.add_sheet(greenland(elevI=(100.0, 100.0, 100.0, 100.0), iA=(0, 0, 1, 1)))
    rm = gcm.regrid_matrices()
    plain = rm.matrix("AvI")
    smooth = rm.matrix("AvI", params=Params(sigma=SMOOTH, conserve=False))
    assert plain.nnz == 4
    assert smooth.nnz == 8
    np.testing.assert_allclose(_row_sums(smooth), 1.0)


def test_smoothing_zero_sigma_axis_is_exact():
    gcm = make_gcm()
    # cells 0 and 1 at 0 m in A 0, cells 2 and 3 at 200 m in A 1
    gcm.add_sheet(greenland(iA=(0, 0, 1, 1)))
    result = gcm.regrid_matrices().matrix("AvI", params=Params(sigma=SMOOTH, conserve=False))
    dense = to_global_dense(result)
    np.testing.assert_array_equal(dense[0, 2:], 0.0)
    np.testing.assert_array_equal(dense[1, :2], 0.0)


def test_smoothing_keeps_ice_side_row_weights():
    gcm = make_gcm()
    gcm.add_sheet(greenland(elevI=(100.0, 100.0, 100.0, 100.0), iA=(0, 0, 1, 1)))
    result = gcm.regrid_matrices().matrix("IvA", params=Params(sigma=SMOOTH, scale=False, conserve=False))
    np.testing.assert_allclose(_row_sums(result), result.wM)


def test_AvE_ignores_sigma(two_sheets):
    rm = two_sheets.regrid_matrices()
    plain = to_global_dense(rm.matrix("AvE"))
    smooth = to_global_dense(rm.matrix("AvE", params=Params(sigma=(5.0, 5.0, 50.0))))
    np.testing.assert_array_equal(plain, smooth)


def test_correctA(one_sheet):
    rm = one_sheet.regrid_matrices()
    params = Params(correctA=True, scale=False)

    AvI = rm.matrix("AvI", params=params)
    np.testing.assert_allclose(AvI.wM, [5.0])
    np.testing.assert_allclose(AvI.M.data, 1.25)
    # ice areas in native units
    np.testing.assert_allclose(AvI.Mw, 1.25)

    IvA = rm.matrix("IvA", params=params)
    np.testing.assert_allclose(IvA.Mw, [5.0])
    np.testing.assert_allclose(IvA.wM, 1.0)

    AvE = rm.matrix("AvE", params=params)
    np.testing.assert_allclose(AvE.wM, [5.0])
    np.testing.assert_allclose(AvE.Mw, [2.5, 2.5])
    np.testing.assert_allclose(AvE.M.data, 2.5)


def test_correctA_default_from_gcm():
    gcm = make_gcm(correctA=True)
    gcm.add_sheet(greenland())
    result = gcm.regrid_matrices().matrix("AvI")
    np.testing.assert_allclose(result.wM, [5.0])
    np.testing.assert_allclose(result.M.data, 0.25)


def test_shared_dims(two_sheets):
    rm = two_sheets.regrid_matrices()
    dimA = SparseSet(4)
    dimA.add([3, 1])

    AvI = rm.matrix("AvI", dims=(dimA, SparseSet()))
    AvE = rm.matrix("AvE", dims=(dimA, SparseSet()))
    assert AvI.dims[0] is dimA
    assert AvE.dims[0] is dimA
    assert dimA.to_sparse_array().tolist() == [3, 1, 0, 2]

    # A 1 has no ice: representable, with zero weight and an empty row
    assert AvI.wM[1] == 0.0
    assert AvI.M.tocsr().getnnz(axis=1)[1] == 0
    assert AvI.wM[0] == pytest.approx(1.5)
    np.testing.assert_allclose(AvE.wM, AvI.wM)


def test_dims_must_be_a_pair(two_sheets):
    with pytest.raises(ConfigurationError):
        two_sheets.regrid_matrices().matrix("AvI", dims=(SparseSet(),))


def test_rebuild_after_filter(two_sheets):
    rm = two_sheets.regrid_matrices()
    two_sheets.filter_cellsA(lambda a: a != 3)
    dense = to_global_dense(rm.matrix("AvI"))
    np.testing.assert_array_equal(dense[3], 0.0)
    np.testing.assert_allclose(dense[2, 4], 1.0)


def test_reproducible(two_sheets):
    rm = two_sheets.regrid_matrices()
    a = rm.matrix("EvI", params=Params(sigma=SMOOTH)).to_sparse_arrays()
    b = rm.matrix("EvI", params=Params(sigma=SMOOTH)).to_sparse_arrays()
    for key in a:
        np.testing.assert_array_equal(a[key], b[key])


def test_no_sheets():
    result = make_gcm().regrid_matrices().matrix("AvI")
    assert result.shape == (0, 0)
    assert result.nnz == 0


def test_logs_build(two_sheets, caplog):
    with caplog.at_level(logging.INFO, logger="earth2ice"):
        two_sheets.regrid_matrices().matrix("IvE")
    assert "built IvE" in caplog.text


def test_linear_and_nearest_agree_on_class_centers():
    results = []
    for style in ["nearest", "linear"]:
        gcm = make_gcm()
        gcm.add_sheet(greenland(interp_style=style))
        results.append(to_global_dense(gcm.regrid_matrices().matrix("IvE")))
    np.testing.assert_allclose(results[0], results[1])


def test_antarctica_only():
    gcm = make_gcm()
    gcm.add_sheet(antarctica())
    result = gcm.regrid_matrices().matrix("EvI")
    # I ids start at 0 when antarctica is the only sheet
    assert set(result.dims[1].to_sparse_array().tolist()) == {0, 1}
