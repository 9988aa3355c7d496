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

from earth2ice import TripletAccumulator, VectorAccumulator


def test_triplets_add_duplicates():
    acc = TripletAccumulator()
    acc.add([0, 1], [1, 1], [1.0, 2.0])
    acc.add(0, 1, 0.5)
    assert len(acc) == 3
    M = acc.to_coo((2, 2)).toarray()
    np.testing.assert_array_equal(M, [[0.0, 1.5], [0.0, 2.0]])


def test_triplets_merge():
    a = TripletAccumulator().add([0], [0], [1.0])
    b = TripletAccumulator().add([0, 1], [0, 0], [2.0, 3.0])
    c = TripletAccumulator().add([1], [1], [4.0])
    left = a.merge(b).merge(c).to_coo((2, 2)).toarray()
    right = a.merge(b.merge(c)).to_coo((2, 2)).toarray()
    np.testing.assert_array_equal(left, right)
    np.testing.assert_array_equal(left, [[3.0, 0.0], [3.0, 4.0]])
    # inputs are left untouched
    assert len(a) == 1


def test_empty_triplets():
    M = TripletAccumulator().to_coo((3, 2))
    assert M.shape == (3, 2)
    assert M.nnz == 0


def test_vector():
    acc = VectorAccumulator()
    acc.add([0, 2, 0], [1.0, 2.0, 3.0])
    other = VectorAccumulator().add([1], [5.0])
    np.testing.assert_array_equal(acc.merge(other).to_dense(4), [4.0, 5.0, 2.0, 0.0])
    assert len(acc) == 3
