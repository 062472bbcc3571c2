"""API routers."""
from . import access, notifications

__all__ = ["access", "notifications"]
