"""Helpers that are not bound to tables or query plans.

Only plain Python utilities live here, the engine
components import them but they don't import the engine.
"""

from . import inspect

__all__ = ("inspect",)
