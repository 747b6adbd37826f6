#!/usr/bin/env python

from setuptools import find_packages, setup

setup(
    name="xcpd-launcher",
    version="0.1.0",
    description="Run containerized xcp_d under singularity inside LSF jobs",
    author="",
    author_email="",
    python_requires=">=3.8",
    install_requires=[
        "hydra-core>=1.3",
        "omegaconf>=2.3",
        "psutil>=5.9",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    package_data={"xcpd_launcher": ["configs/*.yaml"]},
    include_package_data=True,
    entry_points={
        "console_scripts": [
            "run-xcpd = xcpd_launcher.cli.run_xcpd:main",
        ]
    },
)
