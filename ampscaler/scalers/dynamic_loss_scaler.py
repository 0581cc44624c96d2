# Copyright (c) Facebook, Inc. and its affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import logging
import math
from argparse import Namespace
from dataclasses import dataclass, field

from ampscaler.dataclass import AmpscalerDataclass
from ampscaler.dataclass.utils import merge_with_parent, populate_dataclass
from ampscaler.scalers import LossScaler, register_loss_scaler
from ampscaler.scalers.loss_scaler import _MISSING
from omegaconf import DictConfig


logger = logging.getLogger(__name__)


@dataclass
class DynamicLossScalerConfig(AmpscalerDataclass):
    enabled: bool = field(
        default=True,
        metadata={
            "help": "scale the loss; when disabled the scaler is a pass-through",
            "argparse_alias": "--no-loss-scaling",
        },
    )
    init_scale: float = field(default=2.0 ** 16, metadata={"help": "initial loss scale"})
    min_loss_scale: float = field(
        default=1.0, metadata={"help": "lower bound of the loss scale (inclusive)"}
    )
    max_loss_scale: float = field(
        default=2.0 ** 24, metadata={"help": "upper bound of the loss scale (inclusive)"}
    )
    growth_factor: float = field(
        default=2.0,
        metadata={"help": "factor applied to the loss scale after growth-interval clean updates"},
    )
    backoff_factor: float = field(
        default=0.5, metadata={"help": "factor applied to the loss scale on overflow"}
    )
    growth_interval: int = field(
        default=2000,
        metadata={"help": "number of consecutive updates without overflow before increasing the loss scale"},
    )
    max_consecutive_overflows: int = field(
        default=10,
        metadata={"help": "consecutive overflows after which the scaler reports itself unstable"},
    )

    @classmethod
    def for_fp16(cls):
        """Defaults suited to float16 training."""
        return cls()

    @classmethod
    def for_bf16(cls):
        """bfloat16 has the exponent range of float32 and needs no loss scaling."""
        return cls(enabled=False)


def _is_int(value):
    return isinstance(value, int) and not isinstance(value, bool)


def _validate(cfg):
    if not (cfg.min_loss_scale > 0):
        raise ValueError(
            "min_loss_scale must be positive, got {}".format(cfg.min_loss_scale)
        )
    if not (cfg.max_loss_scale >= cfg.min_loss_scale):
        raise ValueError(
            "max_loss_scale ({}) must not be smaller than min_loss_scale ({})".format(
                cfg.max_loss_scale, cfg.min_loss_scale
            )
        )
    if not math.isfinite(cfg.max_loss_scale):
        raise ValueError(
            "max_loss_scale must be finite, got {}".format(cfg.max_loss_scale)
        )
    if not math.isfinite(cfg.init_scale) or not (
        cfg.min_loss_scale <= cfg.init_scale <= cfg.max_loss_scale
    ):
        raise ValueError(
            "init_scale ({}) must lie within [{}, {}]".format(
                cfg.init_scale, cfg.min_loss_scale, cfg.max_loss_scale
            )
        )
    if not (cfg.growth_factor > 1):
        raise ValueError(
            "growth_factor must be greater than 1, got {}".format(cfg.growth_factor)
        )
    if not (0 < cfg.backoff_factor < 1):
        raise ValueError(
            "backoff_factor must be in (0, 1), got {}".format(cfg.backoff_factor)
        )
    if not _is_int(cfg.growth_interval) or cfg.growth_interval <= 0:
        raise ValueError(
            "growth_interval must be a positive integer, got {}".format(
                cfg.growth_interval
            )
        )
    if not _is_int(cfg.max_consecutive_overflows) or cfg.max_consecutive_overflows < 0:
        raise ValueError(
            "max_consecutive_overflows must be a non-negative integer, got {}".format(
                cfg.max_consecutive_overflows
            )
        )


@register_loss_scaler("dynamic", dataclass=DynamicLossScalerConfig)
class DynamicLossScaler(LossScaler):
    """
    Adaptive loss scaler.

    Every overflow multiplies the loss scale by *backoff_factor* and asks the
    caller to skip the step. After *growth_interval* consecutive updates
    without overflow the scale is multiplied by *growth_factor*. The scale is
    clamped to ``[min_loss_scale, max_loss_scale]`` after each change.

    The scaler is not thread safe. Use one instance per training loop.

    Args:
        cfg (DynamicLossScalerConfig, omegaconf.DictConfig or argparse.Namespace,
            optional): scaler configuration. When omitted,
            :func:`DynamicLossScalerConfig.for_fp16` is used. ``None`` is rejected.
    """

    def __init__(self, cfg=_MISSING):
        if cfg is _MISSING:
            cfg = DynamicLossScalerConfig.for_fp16()
        elif cfg is None:
            raise ValueError("cfg must not be None")
        elif isinstance(cfg, DictConfig):
            cfg = merge_with_parent(DynamicLossScalerConfig(), cfg)
        elif isinstance(cfg, Namespace):
            cfg = populate_dataclass(DynamicLossScalerConfig(), cfg)
        _validate(cfg)

        super().__init__(cfg)
        self.init_scale = float(cfg.init_scale)
        self.min_loss_scale = float(cfg.min_loss_scale)
        self.max_loss_scale = float(cfg.max_loss_scale)
        self.growth_factor = float(cfg.growth_factor)
        self.backoff_factor = float(cfg.backoff_factor)
        self._growth_interval = cfg.growth_interval
        self._loss_scale = self.init_scale

        logger.info(
            f"dynamic loss scaling {'enabled' if self.is_enabled else 'disabled'}: "
            f"init_scale={self.init_scale}, range=[{self.min_loss_scale}, "
            f"{self.max_loss_scale}], growth_interval={self._growth_interval}"
        )

    @property
    def loss_scale(self) -> float:
        return self._loss_scale

    @property
    def growth_interval(self) -> int:
        return self._growth_interval

    def _clamp(self, scale):
        return min(max(scale, self.min_loss_scale), self.max_loss_scale)

    def update_scale(self, had_overflow: bool) -> bool:
        if not self.is_enabled:
            return False

        if had_overflow:
            self._loss_scale = self._clamp(self._loss_scale * self.backoff_factor)
            self._note_overflow()
            logger.info(f"overflow detected, setting loss scale to: {self._loss_scale}")
            return True

        self._note_clean_step()
        if self._steps_since_last_overflow >= self._growth_interval:
            self._loss_scale = self._clamp(self._loss_scale * self.growth_factor)
            self._steps_since_last_overflow = 0
            logger.debug(f"increasing loss scale to: {self._loss_scale}")
        return False

    def reset(self):
        super().reset()
        self._loss_scale = self.init_scale
