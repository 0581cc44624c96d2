#!/usr/bin/env python3
# Copyright (c) Facebook, Inc. and its affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import os
import sys

from setuptools import find_packages, setup


if sys.version_info < (3, 8):
    sys.exit("Sorry, Python >= 3.8 is required for ampscaler.")


def write_version_py():
    with open(os.path.join("ampscaler", "version.txt")) as f:
        version = f.read().strip()

    # write version info to ampscaler/version.py
    with open(os.path.join("ampscaler", "version.py"), "w") as f:
        f.write('__version__ = "{}"\n'.format(version))
    return version


version = write_version_py()


with open("README.md") as f:
    readme = f.read()


def do_setup():
    setup(
        name="ampscaler",
        version=version,
        description="Dynamic loss scaling for mixed precision training",
        classifiers=[
            "Intended Audience :: Science/Research",
            "License :: OSI Approved :: MIT License",
            "Programming Language :: Python :: 3.8",
            "Programming Language :: Python :: 3.9",
            "Programming Language :: Python :: 3.10",
            "Programming Language :: Python :: 3.11",
            "Programming Language :: Python :: 3.12",
            "Topic :: Scientific/Engineering :: Artificial Intelligence",
        ],
        long_description=readme,
        long_description_content_type="text/markdown",
        install_requires=[
            "hydra-core>=1.3",
            "omegaconf>=2.3",
            "torch>=2.0.0",
        ],
        extras_require={
            "test": ["pytest"],
        },
        packages=find_packages(
            exclude=[
                "tests",
                "tests.*",
            ]
        ),
        package_data={"ampscaler": ["version.txt"]},
        test_suite="tests",
        entry_points={
            "console_scripts": [
                "ampscaler-replay = ampscaler_cli.replay:cli_main",
            ],
        },
        zip_safe=False,
        python_requires=">=3.8",
    )


if __name__ == "__main__":
    do_setup()
