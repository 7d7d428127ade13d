"""
CLI layer for sluice.

Provides a Typer application whose commands run single lifecycle stages
of registered jobs. This package handles only terminal transport:
argument parsing, coloured output, and table formatting.

Entry point::

    sluice --help
"""

from sluice.cli.app import app

__all__ = ["app"]
