"""Core shared infrastructure for wtspawn.

This package contains foundational utilities:
    - config: Application configuration management
    - console: Rich console output and logging
    - result: Result type and error hierarchy
    - diagnostics: Health checks behind ``wt doctor``
"""

from __future__ import annotations

from . import config, console

__all__ = ["config", "console"]
