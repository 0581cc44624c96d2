# Copyright (c) Facebook, Inc. and its affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import logging
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Dict, Optional

import torch
from ampscaler.dataclass.utils import gen_parser_from_dataclass
from ampscaler.overflow import first_overflow


logger = logging.getLogger(__name__)

# default for an omitted scaler config; an explicit None is rejected
_MISSING = object()


@dataclass(frozen=True)
class LossScalerStats:
    """Point-in-time summary of a loss scaler, detached from the live scaler."""

    loss_scale: float
    steps_since_last_overflow: int
    consecutive_overflows: int
    total_overflows: int
    growth_interval: Optional[int]
    max_consecutive_overflows: int
    is_stable: bool

    def to_dict(self):
        return asdict(self)


class LossScaler(object):
    """
    Base class for loss scalers used in mixed precision training.

    A loss scaler multiplies the loss before the backward pass so that small
    gradients stay representable in reduced precision, divides the resulting
    gradients by the same factor before they are applied, and tells the
    caller whether the optimizer step must be skipped because the gradients
    overflowed.

    Subclasses own the scale itself and decide how it reacts to overflow in
    :func:`update_scale`. The overflow bookkeeping lives here.
    """

    def __init__(self, cfg):
        super().__init__()
        self.cfg = cfg
        self._enabled = bool(cfg.enabled)
        self.max_consecutive_overflows = cfg.max_consecutive_overflows
        self._reset_counters()

    @classmethod
    def add_args(cls, parser):
        """Add scaler-specific arguments to the parser."""
        dc = getattr(cls, "__dataclass", None)
        if dc is not None:
            gen_parser_from_dataclass(parser, dc())

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def loss_scale(self) -> float:
        raise NotImplementedError

    @property
    def growth_interval(self) -> Optional[int]:
        return None

    @property
    def consecutive_overflows(self) -> int:
        return self._consecutive_overflows

    @property
    def steps_since_last_overflow(self) -> int:
        return self._steps_since_last_overflow

    @property
    def total_overflows(self) -> int:
        return self._total_overflows

    def scale(self, loss: torch.Tensor) -> torch.Tensor:
        """Return ``loss * loss_scale``. The input is never modified in place."""
        if loss is None:
            raise ValueError("loss must not be None")
        if not self.is_enabled:
            return loss
        return loss * self.loss_scale

    def unscale_gradients(
        self, gradients: Dict[str, Optional[torch.Tensor]]
    ) -> Dict[str, Optional[torch.Tensor]]:
        """
        Divide every gradient by the current loss scale.

        Returns a new mapping with the same keys; the input tensors are left
        untouched. A disabled scaler returns *gradients* itself.
        """
        self._check_gradients(gradients)
        if not self.is_enabled:
            return gradients
        scale = self.loss_scale
        return {
            name: grad / scale if grad is not None else None
            for name, grad in gradients.items()
        }

    def check_overflow(self, gradients: Dict[str, Optional[torch.Tensor]]) -> bool:
        """
        Returns True if any gradient holds an inf or NaN. A disabled scaler
        never reports an overflow.
        """
        self._check_gradients(gradients)
        if not self.is_enabled:
            return False
        name = first_overflow(gradients)
        if name is not None:
            logger.debug(f"inf/nan detected in gradient of {name}")
            return True
        return False

    def update_scale(self, had_overflow: bool) -> bool:
        """
        Advance the scaler by one step.

        Returns:
            True if the optimizer step that produced these gradients must be
            skipped.
        """
        raise NotImplementedError

    def check_overflow_and_update(
        self, gradients: Dict[str, Optional[torch.Tensor]]
    ) -> bool:
        return self.update_scale(self.check_overflow(gradients))

    def reset(self):
        self._reset_counters()

    def get_stats(self) -> LossScalerStats:
        return LossScalerStats(
            loss_scale=self.loss_scale,
            steps_since_last_overflow=self._steps_since_last_overflow,
            consecutive_overflows=self._consecutive_overflows,
            total_overflows=self._total_overflows,
            growth_interval=self.growth_interval,
            max_consecutive_overflows=self.max_consecutive_overflows,
            is_stable=self.is_stable,
        )

    @property
    def is_stable(self) -> bool:
        return self._consecutive_overflows < self.max_consecutive_overflows

    def _check_gradients(self, gradients):
        if gradients is None:
            raise ValueError("gradients must not be None")
        if not isinstance(gradients, Mapping):
            raise ValueError(
                "gradients must be a mapping of name to tensor, got {}".format(
                    type(gradients).__name__
                )
            )

    def _reset_counters(self):
        self._consecutive_overflows = 0
        self._steps_since_last_overflow = 0
        self._total_overflows = 0

    def _note_overflow(self):
        self._total_overflows += 1
        self._consecutive_overflows += 1
        self._steps_since_last_overflow = 0
        if self._consecutive_overflows == max(self.max_consecutive_overflows, 1):
            logger.warning(
                f"{self._consecutive_overflows} consecutive overflows at loss scale "
                f"{self.loss_scale}. Your loss is probably exploding. Try lowering "
                "the learning rate, using gradient clipping or increasing the "
                "batch size."
            )

    def _note_clean_step(self):
        self._consecutive_overflows = 0
        self._steps_since_last_overflow += 1
