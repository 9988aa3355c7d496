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
import itertools
import logging
from typing import Sequence

import numpy as np
import scipy.sparse
from scipy import spatial

from earth2ice.errors import ConfigurationError

logger = logging.getLogger(__name__)

# neighbourhood radius, in units of sigma
TRUNCATE = 3.0


def gaussian_smoothing_matrix(
    points: np.ndarray, mass: np.ndarray, sigma: Sequence[float], truncate: float = TRUNCATE
) -> scipy.sparse.csr_matrix:
    """Row stochastic Gaussian smoothing kernel

    ``S[i, j] ~ mass[j] * exp(-0.5 * sum_k ((p[i, k] - p[j, k]) / sigma[k])**2)``

    with each row normalized to 1. Axes with ``sigma[k] == 0`` are not
    smoothed: only points with an identical coordinate on that axis interact.

    Args:
        points: (n, d) coordinates
        mass: (n,) weight of each point, e.g. its area
        sigma: (d,) standard deviations
        truncate: neighbours further than this many sigmas are ignored

    Returns:
        (n, n) sparse matrix
    """
    points = np.asarray(points, dtype=np.float64)
    mass = np.asarray(mass, dtype=np.float64)
    sigma = np.asarray(sigma, dtype=np.float64)
    n, d = points.shape
    if sigma.shape != (d,):
        raise ConfigurationError("sigma must have one entry per coordinate axis", expected=d, got=sigma.shape)
    if np.any(sigma < 0):
        raise ConfigurationError("sigma must be non-negative", sigma=sigma.tolist())
    if np.any(np.isnan(points)):
        raise ConfigurationError("cannot smooth cells with undefined coordinates")

    active = sigma != 0
    if n == 0 or not np.any(active):
        return scipy.sparse.identity(n, format="csr")

    scaled = points[:, active] / sigma[active]
    tree = spatial.KDTree(scaled)
    neighbours = tree.query_ball_point(scaled, r=truncate)

    counts = np.fromiter((len(nb) for nb in neighbours), dtype=np.int64, count=n)
    rows = np.repeat(np.arange(n), counts)
    cols = np.fromiter(itertools.chain.from_iterable(neighbours), dtype=np.int64, count=int(counts.sum()))
    logger.debug("smoothing %d points, mean neighbourhood %.1f", n, counts.mean() if n else 0.0)

    fixed = ~active
    if np.any(fixed):
        same = np.all(points[rows][:, fixed] == points[cols][:, fixed], axis=1)
        rows, cols = rows[same], cols[same]

    d2 = np.sum((scaled[rows] - scaled[cols]) ** 2, axis=1)
    vals = mass[cols] * np.exp(-0.5 * d2)

    kernel = scipy.sparse.csr_matrix((vals, (rows, cols)), shape=(n, n))
    total = np.asarray(kernel.sum(axis=1)).ravel()
    inv = np.divide(1.0, total, out=np.zeros_like(total), where=total != 0)
    return scipy.sparse.diags(inv) @ kernel
