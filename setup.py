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
from setuptools import find_packages, setup

setup(
    name='earth2ice',
    version='0.1.0',
    description='Regridding matrices between atmosphere, elevation class and ice sheet grids',
    packages=find_packages(include=['earth2ice', 'earth2ice.*']),
    python_requires='>=3.9',
    install_requires=[
        'numpy',
        'scipy',
        'torch',
        'einops>=0.6',
    ],
    extras_require={
        'test': ['pytest'],
    },
)
