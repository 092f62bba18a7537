# src/transmissibility/__init__.py
"""
Renewal-equation tools for outbreak transmissibility: serial intervals,
time-varying reproduction numbers and short-term projections.
"""
from .version_info import VERSION as __version__  # noqa: F401
