# Copyright (c) Facebook, Inc. and its affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import math
from argparse import Namespace
from dataclasses import dataclass, field

from ampscaler.dataclass import AmpscalerDataclass
from ampscaler.dataclass.utils import merge_with_parent, populate_dataclass
from ampscaler.scalers import LossScaler, register_loss_scaler
from ampscaler.scalers.loss_scaler import _MISSING
from omegaconf import DictConfig


@dataclass
class StaticLossScalerConfig(AmpscalerDataclass):
    enabled: bool = field(
        default=True,
        metadata={
            "help": "scale the loss; when disabled the scaler is a pass-through",
            "argparse_alias": "--no-loss-scaling",
        },
    )
    loss_scale: float = field(default=2.0 ** 15, metadata={"help": "fixed loss scale"})
    max_consecutive_overflows: int = field(
        default=10,
        metadata={"help": "consecutive overflows after which the scaler reports itself unstable"},
    )


@register_loss_scaler("static", dataclass=StaticLossScalerConfig)
class StaticLossScaler(LossScaler):
    """
    Loss scaler with a fixed scale.

    Overflowing steps are still detected, counted and reported as skipped,
    but the scale never changes.
    """

    def __init__(self, cfg=_MISSING):
        if cfg is _MISSING:
            cfg = StaticLossScalerConfig()
        elif cfg is None:
            raise ValueError("cfg must not be None")
        elif isinstance(cfg, DictConfig):
            cfg = merge_with_parent(StaticLossScalerConfig(), cfg)
        elif isinstance(cfg, Namespace):
            cfg = populate_dataclass(StaticLossScalerConfig(), cfg)
        if not (cfg.loss_scale > 0) or not math.isfinite(cfg.loss_scale):
            raise ValueError(
                "loss_scale must be a positive finite number, got {}".format(
                    cfg.loss_scale
                )
            )
        if (
            isinstance(cfg.max_consecutive_overflows, bool)
            or not isinstance(cfg.max_consecutive_overflows, int)
            or cfg.max_consecutive_overflows < 0
        ):
            raise ValueError(
                "max_consecutive_overflows must be a non-negative integer, got {}".format(
                    cfg.max_consecutive_overflows
                )
            )

        super().__init__(cfg)
        self._loss_scale = float(cfg.loss_scale)

    @property
    def loss_scale(self) -> float:
        return self._loss_scale

    def update_scale(self, had_overflow: bool) -> bool:
        if not self.is_enabled:
            return False
        if had_overflow:
            self._note_overflow()
            return True
        self._note_clean_step()
        return False
