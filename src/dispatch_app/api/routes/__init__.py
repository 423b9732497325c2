"""Route group exports."""

from . import health, optimize

__all__ = ["health", "optimize"]
