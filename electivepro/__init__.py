"""ElectivePRO application package root.

Multi-tenant elective course and exchange program selection. The Flask
application is assembled by `electivepro.startup.wiring.create_app`; the
wrapper below keeps package import free of Flask side effects so that
`electivepro.config` and friends stay importable on their own.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional


def create_app(overrides: Optional[Mapping[str, Any]] = None):
    from electivepro.startup.wiring import create_app as _create_app

    return _create_app(overrides)


__all__ = [
    "create_app",
]
