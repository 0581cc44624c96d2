# Copyright (c) Facebook, Inc. and its affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""isort:skip_file"""

import os

try:
    from .version import __version__  # noqa
except ImportError:
    version_txt = os.path.join(os.path.dirname(__file__), "version.txt")
    with open(version_txt) as f:
        __version__ = f.read().strip()

import ampscaler.scalers  # noqa

from ampscaler.scalers import (  # noqa
    DynamicLossScaler,
    LossScaler,
    LossScalerStats,
    StaticLossScaler,
    build_loss_scaler,
    register_loss_scaler,
)
from ampscaler.scalers.dynamic_loss_scaler import DynamicLossScalerConfig  # noqa
from ampscaler.scalers.static_loss_scaler import StaticLossScalerConfig  # noqa

__all__ = [
    "DynamicLossScaler",
    "DynamicLossScalerConfig",
    "LossScaler",
    "LossScalerStats",
    "StaticLossScaler",
    "StaticLossScalerConfig",
    "build_loss_scaler",
    "register_loss_scaler",
]
