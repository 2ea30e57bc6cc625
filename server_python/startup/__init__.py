"""
Startup - coordinator initialization

Settings loading and runtime wiring used by main.py.
"""

from .settings import CoordinatorSettings
from .coordinator_factory import CoordinatorRuntime, build_runtime

__all__ = [
    "CoordinatorSettings",
    "CoordinatorRuntime",
    "build_runtime",
]
