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
# limitations under the License
"""
Ice sheet to elevation classes
------------------------------

A 40 x 40 km ice sheet on a 4 x 4 km grid, sitting on 2 x 2 atmosphere cells
of 20 km, with a dome shaped surface. The surface mass balance computed by
the ice model is regridded to the atmosphere's elevation classes and back.
"""
import logging

import numpy as np
import torch

import earth2ice

logging.basicConfig(level=logging.INFO)

# %%
# Grids
# -----
# The ice grid: 10 x 10 cells of 4 km, ids in row major order
n = 10
dx = 4.0
x, y = np.meshgrid((np.arange(n) + 0.5) * dx, (np.arange(n) + 0.5) * dx)
x, y = x.ravel(), y.ravel()
gridI = earth2ice.Grid("dome", index=np.arange(n * n), native_area=np.full(n * n, dx * dx), x=x, y=y)

# the atmosphere grid: 2 x 2 cells of 20 km
gridA = earth2ice.Grid("atmosphere", index=np.arange(4), native_area=np.full(4, 400.0))

# every ice cell falls inside exactly one atmosphere cell
iA = (y // 20).astype(int) * 2 + (x // 20).astype(int)
exgrid = earth2ice.ExchangeGrid(iI=gridI.index, iA=iA, area=gridI.native_area)

# dome shaped surface, no ice in the corners
r = np.hypot(x - 20, y - 20)
elevI = np.where(r < 20, 2000 * np.sqrt(np.clip(1 - (r / 20) ** 2, 0, 1)), np.nan)

# %%
# Elevation classes
# -----------------
hcdefs = earth2ice.elevation_classes(0, 2000, 250)
indexingHC = earth2ice.Indexing((gridA.sparse_extent, len(hcdefs)), names=("A", "hc"))
gcm = earth2ice.GCMRegridder(gridA, hcdefs, indexingHC)
gcm.new_sheet("dome", gridI, exgrid, elevI, interp_style="linear")

fractions = gcm.fractions()
print("ice fraction of each atmosphere cell:", fractions.fgice)

# %%
# Regrid the surface mass balance
# -------------------------------
smb = 1.0 - elevI / 1000.0

rm = gcm.regrid_matrices()
EvI = rm.matrix("EvI")
smbE = EvI.apply(smb, ignore_nan=True)

total_I = np.nansum(smb * gridI.native_area)
EvI_raw = rm.matrix("EvI", params=earth2ice.Params(scale=False))
total_E = EvI_raw.apply(smb, fill=0.0, ignore_nan=True).sum()
print(f"total mass balance on I: {total_I:.3f}, on E: {total_E:.3f}")

# %%
# The same with torch, e.g. inside a model
regrid = EvI.to_regridder()
smbE_torch = regrid(torch.from_numpy(np.nan_to_num(smb)))
print("max difference numpy / torch:", np.nanmax(np.abs(smbE_torch.numpy() - smbE)))

# smoothed back to the ice grid
smooth = rm.matrix("IvE", params=earth2ice.Params(sigma=(8.0, 8.0, 500.0)))
smbI = smooth.apply(np.nan_to_num(smbE))
print("ice cells reached:", np.count_nonzero(~np.isnan(smbI)), "of", int(np.sum(~np.isnan(elevI))))
