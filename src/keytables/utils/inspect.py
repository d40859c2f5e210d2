"""Describe Python objects by their dotted path."""

import inspect
from typing import Any


def get_qualname(obj: Any) -> str:
    """Get the dotted path of a function, method, class or module.

    Query plans show the functions invoked by their
    expressions with this path, so that the same plan
    always prints the same way.

    >>> import statistics
    >>> get_qualname(statistics.median)
    'statistics.median'
    >>> get_qualname(statistics)
    'statistics'
    >>> class Fare:
    ...   def total(self):
    ...     pass
    >>> get_qualname(Fare().total)
    'keytables.utils.inspect.Fare.total'

    Objects that are neither of those are described
    by the path of their class.
    """
    if inspect.ismodule(obj):
        return obj.__name__

    module = inspect.getmodule(obj)
    prefix = f"{module.__name__}." if module is not None else ""
    if inspect.isroutine(obj) or inspect.isclass(obj):
        return prefix + obj.__qualname__
    return prefix + type(obj).__name__
