# Copyright (c) Facebook, Inc. and its affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import copy
import inspect
import logging
import re
from argparse import ArgumentError, ArgumentParser, Namespace
from dataclasses import MISSING, is_dataclass
from enum import Enum
from typing import Any, Dict, Optional

from ampscaler.dataclass import AmpscalerDataclass
from omegaconf import DictConfig, OmegaConf, open_dict

logger = logging.getLogger(__name__)


def interpret_dc_type(field_type):
    if isinstance(field_type, str):
        raise RuntimeError("field should be a type")

    if field_type == Any:
        return str

    typestring = str(field_type)
    if re.match(
        r"(typing.|^)Union\[(.*), NoneType\]$", typestring
    ) or typestring.startswith("typing.Optional"):
        return field_type.__args__[0]
    return field_type


def gen_parser_from_dataclass(
    parser: ArgumentParser,
    dataclass_instance: AmpscalerDataclass,
    delete_default: bool = False,
    with_prefix: Optional[str] = None,
) -> None:
    """
    convert a dataclass instance to tailing parser arguments.

    If `with_prefix` is provided, prefix all the keys in the resulting parser with it.
    """

    def argparse_name(name: str):
        if name == "_name":
            # private member, skip
            return None
        full_name = "--" + name.replace("_", "-")
        if with_prefix is not None and with_prefix != "":
            full_name = with_prefix + "-" + full_name[2:]  # strip -- when composing
        return full_name

    def get_kwargs_from_dc(
        dataclass_instance: AmpscalerDataclass, k: str
    ) -> Dict[str, Any]:
        """k: dataclass attributes"""

        kwargs = {}

        field_type = dataclass_instance._get_type(k)
        inter_type = interpret_dc_type(field_type)

        field_default = dataclass_instance._get_default(k)

        if isinstance(inter_type, type) and issubclass(inter_type, Enum):
            field_choices = [t.value for t in list(inter_type)]
        else:
            field_choices = None

        field_help = dataclass_instance._get_help(k)

        if field_default is MISSING:
            kwargs["required"] = True
        if field_choices is not None:
            kwargs["choices"] = field_choices
        if isinstance(inter_type, type) and issubclass(inter_type, Enum):
            kwargs["type"] = str
            if field_default is not MISSING:
                if isinstance(field_default, Enum):
                    kwargs["default"] = field_default.value
                else:
                    kwargs["default"] = field_default
        elif inter_type is bool:
            kwargs["action"] = "store_false" if field_default is True else "store_true"
            kwargs["default"] = field_default
        else:
            kwargs["type"] = inter_type
            if field_default is not MISSING:
                kwargs["default"] = field_default

        # build the help with the hierarchical prefix
        if with_prefix is not None and with_prefix != "" and field_help is not None:
            field_help = with_prefix[2:] + ": " + field_help

        kwargs["help"] = field_help
        return kwargs

    for k in dataclass_instance._get_all_attributes():
        field_name = argparse_name(dataclass_instance._get_name(k))
        field_type = dataclass_instance._get_type(k)
        if field_name is None:
            continue
        elif inspect.isclass(field_type) and issubclass(field_type, AmpscalerDataclass):
            # nested dataclasses are flattened into the same namespace
            prefix = None
            if with_prefix is not None:
                prefix = field_name
            gen_parser_from_dataclass(parser, field_type(), delete_default, prefix)
            continue

        kwargs = get_kwargs_from_dc(dataclass_instance, k)

        field_args = [field_name]
        alias = dataclass_instance._get_argparse_alias(k)
        if kwargs.get("action") == "store_false":
            # flags that default to True are switched off with their alias,
            # or with --no-<name> when they have none
            field_args = [alias if alias is not None else "--no-" + field_name[2:]]
            kwargs["dest"] = k
        elif alias is not None:
            field_args.append(alias)

        if delete_default and "default" in kwargs:
            del kwargs["default"]
        try:
            parser.add_argument(*field_args, **kwargs)
        except ArgumentError:
            # another dataclass already registered this flag
            logger.debug(f"skipping duplicate argument {field_name}")


def populate_dataclass(
    dataclass: AmpscalerDataclass, args: Namespace
) -> AmpscalerDataclass:
    """Copy matching attributes of a flat *args* namespace onto *dataclass*."""
    for k in dataclass.__dataclass_fields__.keys():
        if k.startswith("_"):
            # private member, skip
            continue
        if hasattr(args, k):
            setattr(dataclass, k, getattr(args, k))

    return dataclass


def merge_with_parent(dc: AmpscalerDataclass, cfg: DictConfig, remove_missing=True):
    cfg = copy.deepcopy(cfg)
    if remove_missing:

        if is_dataclass(dc):
            target_keys = set(dc.__dataclass_fields__.keys())
        else:
            target_keys = set(dc.keys())

        with open_dict(cfg):
            for k in list(cfg.keys()):
                if k not in target_keys:
                    del cfg[k]

    merged_cfg = OmegaConf.merge(dc, cfg)
    OmegaConf.set_struct(merged_cfg, True)
    return merged_cfg
