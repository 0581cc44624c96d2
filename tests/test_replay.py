# Copyright (c) Facebook, Inc. and its affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import contextlib
import io
import json
import logging
import os
import tempfile
import unittest

from ampscaler_cli import replay


class TestReplay(unittest.TestCase):
    def setUp(self):
        logging.disable(logging.CRITICAL)
        self.tmpdir = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.tmpdir.cleanup()
        logging.disable(logging.NOTSET)

    def write_trace(self, text):
        path = os.path.join(self.tmpdir.name, "trace.txt")
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
        return path

    def run_replay(self, argv):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            stats = replay.main(replay.parse_args(argv))
        lines = [json.loads(line) for line in out.getvalue().splitlines()]
        return stats, lines

    def test_parse_trace(self):
        self.assertEqual(
            replay.parse_trace("0 1,ok\nOVERFLOW  false\ttrue nan"),
            [False, True, False, True, False, True, True],
        )
        self.assertEqual(replay.parse_trace("  \n"), [])
        with self.assertRaises(ValueError):
            replay.parse_trace("0 maybe 1")

    def test_parse_args_defaults(self):
        args = replay.parse_args(["trace.txt"])
        self.assertEqual(args.loss_scaler, "dynamic")
        self.assertEqual(args.trace, "trace.txt")
        self.assertEqual(args.growth_interval, 2000)
        self.assertTrue(args.enabled)
        self.assertFalse(args.verbose)

    def test_parse_args_static(self):
        args = replay.parse_args(["--loss-scaler", "static", "--loss-scale", "8"])
        self.assertEqual(args.loss_scale, 8.0)
        self.assertFalse(hasattr(args, "growth_interval"))

    def test_parse_args_precision_preset(self):
        args = replay.parse_args(["--precision", "bf16"])
        self.assertFalse(args.enabled)
        args = replay.parse_args(["--precision", "fp16", "--init-scale", "4"])
        self.assertTrue(args.enabled)
        self.assertEqual(args.init_scale, 4.0)

    def test_precision_requires_dynamic(self):
        with contextlib.redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit):
                replay.parse_args(["--loss-scaler", "static", "--precision", "fp16"])

    def test_replay_dynamic(self):
        path = self.write_trace("0 0 1 0 0 0\n")
        stats, lines = self.run_replay(
            [
                "--init-scale", "1024",
                "--growth-interval", "2",
                "--verbose",
                path,
            ]
        )
        self.assertEqual(len(lines), 7)
        self.assertEqual(
            [line["loss_scale"] for line in lines[:-1]],
            [1024.0, 2048.0, 1024.0, 1024.0, 2048.0, 2048.0],
        )
        self.assertEqual([line["skip"] for line in lines[:-1]].count(True), 1)
        self.assertEqual(lines[-1], stats.to_dict())
        self.assertEqual(stats.loss_scale, 2048.0)
        self.assertEqual(stats.total_overflows, 1)
        self.assertEqual(stats.steps_since_last_overflow, 1)

    def test_replay_disabled(self):
        path = self.write_trace("1 1 1")
        stats, lines = self.run_replay(["--no-loss-scaling", path])
        self.assertEqual(len(lines), 1)
        self.assertEqual(stats.total_overflows, 0)
        self.assertEqual(stats.loss_scale, 2.0 ** 16)

    def test_replay_static(self):
        path = self.write_trace("1,1,0")
        stats, _ = self.run_replay(
            ["--loss-scaler", "static", "--loss-scale", "64", path]
        )
        self.assertEqual(stats.loss_scale, 64.0)
        self.assertEqual(stats.total_overflows, 2)
        self.assertEqual(stats.consecutive_overflows, 0)


if __name__ == "__main__":
    unittest.main()
