"""
greenbay - system integration and acceptance testing

File: src/greenbay/__init__.py

Purpose
- Package root. Exposes version metadata only.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init,
  no check registration).
"""

__version__ = "0.4.0"

__all__ = ["__version__"]
