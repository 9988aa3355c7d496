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
from typing import Any, Dict

__all__ = ["RegridError", "ConfigurationError", "DataIntegrityError"]


class RegridError(ValueError):
    """Base error for regridding matrix builds

    Attrs:
        kind: short machine readable category
        context: the values that triggered the error
    """

    kind = "regrid"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def __str__(self):
        if not self.context:
            return f"[{self.kind}] {self.message}"
        details = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
        return f"[{self.kind}] {self.message} ({details})"


class ConfigurationError(RegridError):
    """Invalid setup, detected before any computation"""

    kind = "configuration"


class DataIntegrityError(RegridError):
    """Inconsistent data detected while aggregating"""

    kind = "data-integrity"
