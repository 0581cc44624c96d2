#!/usr/bin/env python3 -u
# Copyright (c) Facebook, Inc. and its affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Replay an overflow trace through a loss scaler and report how the loss scale
evolves. Useful to tune growth/backoff settings offline from the overflow
pattern of a real run.
"""

import argparse
import json
import logging
import os
import re
import sys
from dataclasses import dataclass, field
from typing import List, Optional

logging.basicConfig(
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    level=os.environ.get("LOGLEVEL", "INFO").upper(),
    stream=sys.stderr,
)
logger = logging.getLogger("ampscaler_cli.replay")

from ampscaler.dataclass import AmpscalerDataclass
from ampscaler.dataclass.constants import LOSS_SCALER_CHOICES, PRECISION_CHOICES
from ampscaler.dataclass.utils import gen_parser_from_dataclass
from ampscaler.scalers import LOSS_SCALER_REGISTRY, LossScalerStats, build_loss_scaler
from ampscaler.scalers.dynamic_loss_scaler import DynamicLossScalerConfig


CLEAN_TOKENS = {"0", "false", "ok", "clean"}
OVERFLOW_TOKENS = {"1", "true", "overflow", "inf", "nan"}


@dataclass
class ReplayConfig(AmpscalerDataclass):
    loss_scaler: LOSS_SCALER_CHOICES = field(
        default="dynamic", metadata={"help": "loss scaler to replay the trace through"}
    )
    precision: Optional[PRECISION_CHOICES] = field(
        default=None,
        metadata={"help": "start from the preset for this precision (dynamic scaler only)"},
    )
    verbose: bool = field(
        default=False, metadata={"help": "print the scaler state after every step"}
    )


def parse_trace(text: str) -> List[bool]:
    """Parse a whitespace or comma separated overflow trace."""
    trace = []
    for tok in re.split(r"[\s,]+", text.strip()):
        if not tok:
            continue
        tok = tok.lower()
        if tok in CLEAN_TOKENS:
            trace.append(False)
        elif tok in OVERFLOW_TOKENS:
            trace.append(True)
        else:
            raise ValueError("unrecognised trace token {!r}".format(tok))
    return trace


def get_parser():
    parser = argparse.ArgumentParser(
        description="replay an overflow trace through a loss scaler",
        allow_abbrev=False,
    )
    gen_parser_from_dataclass(parser, ReplayConfig())
    parser.add_argument(
        "trace",
        nargs="?",
        default="-",
        help="file holding the overflow trace, or - to read it from stdin",
    )
    return parser


def parse_args(input_args=None):
    parser = get_parser()
    args, _ = parser.parse_known_args(input_args)

    # add the arguments of the chosen scaler
    LOSS_SCALER_REGISTRY[args.loss_scaler].add_args(parser)

    if args.precision is not None:
        if args.loss_scaler != "dynamic":
            parser.error("--precision is only supported with --loss-scaler dynamic")
        preset = (
            DynamicLossScalerConfig.for_bf16()
            if args.precision == "bf16"
            else DynamicLossScalerConfig.for_fp16()
        )
        # explicit flags still take precedence over the preset
        parser.set_defaults(
            **{
                k: getattr(preset, k)
                for k in preset.__dataclass_fields__.keys()
                if not k.startswith("_")
            }
        )

    return parser.parse_args(input_args)


def main(args) -> LossScalerStats:
    if args.trace == "-":
        trace = parse_trace(sys.stdin.read())
    else:
        with open(args.trace, "r", encoding="utf-8") as f:
            trace = parse_trace(f.read())

    scaler = build_loss_scaler(args)

    num_skipped = 0
    for step, overflow in enumerate(trace, start=1):
        skip = scaler.update_scale(overflow)
        num_skipped += int(skip)
        if args.verbose:
            print(
                json.dumps(
                    {
                        "step": step,
                        "overflow": overflow,
                        "skip": skip,
                        "loss_scale": scaler.loss_scale,
                    }
                )
            )

    stats = scaler.get_stats()
    logger.info(
        f"replayed {len(trace)} steps, skipped {num_skipped}, "
        f"final loss scale {stats.loss_scale}"
    )
    print(json.dumps(stats.to_dict()))
    return stats


def cli_main():
    main(parse_args())


if __name__ == "__main__":
    cli_main()
