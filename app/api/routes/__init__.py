from . import admin, health

__all__ = ["admin", "health"]
