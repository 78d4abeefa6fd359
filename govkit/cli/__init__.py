"""
govkit CLI Module

Command-line interface for driving governance proposals.
"""

from .governance import cli

__all__ = ["cli"]
