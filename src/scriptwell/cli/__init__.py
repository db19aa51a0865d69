"""Scriptwell command-line interface."""

from scriptwell.cli.main import main

__all__ = ["main"]
