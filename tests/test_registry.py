# Copyright (c) Facebook, Inc. and its affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import logging
import unittest
from argparse import Namespace
from dataclasses import dataclass, field

from ampscaler import registry
from ampscaler.dataclass import AmpscalerDataclass
from ampscaler.scalers import (
    LOSS_SCALER_DATACLASS_REGISTRY,
    LOSS_SCALER_REGISTRY,
    DynamicLossScaler,
    LossScaler,
    StaticLossScaler,
    build_loss_scaler,
    register_loss_scaler,
)
from ampscaler.scalers.dynamic_loss_scaler import DynamicLossScalerConfig
from hydra.core.config_store import ConfigStore
from omegaconf import OmegaConf


@dataclass
class WidgetConfig(AmpscalerDataclass):
    size: int = field(default=1, metadata={"help": "widget size"})


class Widget(object):
    def __init__(self, cfg):
        self.cfg = cfg


class TestLossScalerRegistry(unittest.TestCase):
    def setUp(self):
        logging.disable(logging.CRITICAL)

    def tearDown(self):
        logging.disable(logging.NOTSET)

    def test_registered_scalers(self):
        self.assertIs(LOSS_SCALER_REGISTRY["dynamic"], DynamicLossScaler)
        self.assertIs(LOSS_SCALER_REGISTRY["static"], StaticLossScaler)
        self.assertIs(LOSS_SCALER_DATACLASS_REGISTRY["dynamic"], DynamicLossScalerConfig)

    def test_config_store(self):
        names = ConfigStore.instance().list("loss_scaler")
        self.assertIn("dynamic.yaml", names)
        self.assertIn("static.yaml", names)

    def test_build_from_dataclass(self):
        scaler = build_loss_scaler(DynamicLossScalerConfig(init_scale=32.0))
        self.assertIsInstance(scaler, DynamicLossScaler)
        self.assertEqual(scaler.loss_scale, 32.0)

    def test_build_from_dictconfig(self):
        cfg = OmegaConf.create(
            {"_name": "dynamic", "init_scale": 64.0, "growth_interval": 7}
        )
        scaler = build_loss_scaler(cfg)
        self.assertIsInstance(scaler, DynamicLossScaler)
        self.assertEqual(scaler.loss_scale, 64.0)
        self.assertEqual(scaler.growth_interval, 7)

        scaler = build_loss_scaler(OmegaConf.create({"_name": "static", "loss_scale": 4.0}))
        self.assertIsInstance(scaler, StaticLossScaler)
        self.assertEqual(scaler.loss_scale, 4.0)

    def test_build_from_string(self):
        scaler = build_loss_scaler("static")
        self.assertIsInstance(scaler, StaticLossScaler)
        self.assertEqual(scaler.loss_scale, 2.0 ** 15)

    def test_build_from_namespace(self):
        args = Namespace(loss_scaler="dynamic", init_scale=16.0, backoff_factor=0.25)
        scaler = build_loss_scaler(args)
        self.assertIsInstance(scaler, DynamicLossScaler)
        self.assertEqual(scaler.loss_scale, 16.0)
        self.assertEqual(scaler.backoff_factor, 0.25)

    def test_build_requires_config(self):
        with self.assertRaises(ValueError):
            build_loss_scaler(None)
        with self.assertRaises(ValueError):
            build_loss_scaler(Namespace())

    def test_build_unknown(self):
        with self.assertRaises(ValueError):
            build_loss_scaler("no_such_scaler")

    def test_build_invalid_config(self):
        with self.assertRaises(ValueError):
            build_loss_scaler(
                OmegaConf.create({"_name": "dynamic", "backoff_factor": 2.0})
            )

    def test_duplicate_registration(self):
        with self.assertRaises(ValueError):

            @register_loss_scaler("dynamic")
            class AnotherScaler(LossScaler):
                pass

    def test_registration_requires_base_class(self):
        with self.assertRaises(ValueError):

            @register_loss_scaler("not_a_scaler")
            class NotAScaler(object):
                pass

    def test_setup_registry(self):
        build_widget, register_widget, widgets, dataclasses = registry.setup_registry(
            "--test-widget"
        )
        register_widget("small", dataclass=WidgetConfig)(Widget)
        self.assertIs(widgets["small"], Widget)
        self.assertIs(dataclasses["small"], WidgetConfig)
        self.assertIsNone(build_widget(None))

        widget = build_widget(OmegaConf.create({"_name": "small", "size": 3}))
        self.assertEqual(widget.cfg.size, 3)

        with self.assertRaises(ValueError):
            registry.setup_registry("--test-widget")


    def test_build_constructs_class_directly(self):
        class Gadget(Widget):
            @classmethod
            def build_gadget(cls, cfg):
                raise AssertionError("classmethod builders are not used")

        build_gadget, register_gadget, _, _ = registry.setup_registry("--test-gadget")
        register_gadget("plain", dataclass=WidgetConfig)(Gadget)
        gadget = build_gadget("plain")
        self.assertIsInstance(gadget, Gadget)
        self.assertEqual(gadget.cfg.size, 1)
        self.assertEqual(
            sorted(registry.REGISTRIES["test_gadget"]),
            ["dataclass_registry", "registry"],
        )
        with self.assertRaises(ValueError):
            build_gadget("missing")
        with self.assertRaises(TypeError):
            registry.setup_registry("--test-other-gadget", default="plain")

    def test_dataclass_has_no_name_helper(self):
        self.assertFalse(hasattr(AmpscalerDataclass, "name"))
        self.assertIsNone(WidgetConfig()._name)

if __name__ == "__main__":
    unittest.main()
