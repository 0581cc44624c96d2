# Copyright (c) Facebook, Inc. and its affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""isort:skip_file"""

import importlib
import os

from ampscaler import registry
from ampscaler.scalers.loss_scaler import LossScaler, LossScalerStats  # noqa
from omegaconf import DictConfig


(
    _build_loss_scaler,
    register_loss_scaler,
    LOSS_SCALER_REGISTRY,
    LOSS_SCALER_DATACLASS_REGISTRY,
) = registry.setup_registry("--loss-scaler", base_class=LossScaler, required=True)


def build_loss_scaler(cfg: DictConfig, *extra_args, **extra_kwargs):
    return _build_loss_scaler(cfg, *extra_args, **extra_kwargs)


# automatically import any Python files in the scalers/ directory
for file in sorted(os.listdir(os.path.dirname(__file__))):
    if file.endswith(".py") and not file.startswith("_"):
        file_name = file[: file.find(".py")]
        importlib.import_module("ampscaler.scalers." + file_name)


from ampscaler.scalers.dynamic_loss_scaler import DynamicLossScaler  # noqa
from ampscaler.scalers.static_loss_scaler import StaticLossScaler  # noqa

__all__ = [
    "DynamicLossScaler",
    "LossScaler",
    "LossScalerStats",
    "StaticLossScaler",
    "build_loss_scaler",
    "register_loss_scaler",
]
