"""
Command-Line Interface
======================

landstack CLI for training and validation.

Usage:
    landstack train --config configs/landstack.yaml
    landstack validate --config configs/landstack.yaml
    landstack link --config configs/landstack.yaml --output linked.csv
    landstack map --config configs/landstack.yaml --label BP
"""

from landstack.cli.main import cli

__all__ = ["cli"]
