# Copyright (c) Facebook, Inc. and its affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from typing import Mapping, Optional

import torch


def has_inf_or_nan(tensor: torch.Tensor) -> bool:
    """Returns True if *tensor* holds any +/-inf or NaN element."""
    if not (tensor.is_floating_point() or tensor.is_complex()):
        # integer and bool tensors cannot represent inf/nan
        return False
    return not bool(torch.isfinite(tensor).all())


def first_overflow(
    gradients: Mapping[str, Optional[torch.Tensor]]
) -> Optional[str]:
    """
    Scan *gradients* and return the name of the first tensor that contains
    an inf or NaN, or None if every element of every tensor is finite.

    Entries whose value is None (parameters without a gradient) are skipped.
    """
    for name, grad in gradients.items():
        if grad is None:
            continue
        if has_inf_or_nan(grad):
            return name
    return None

