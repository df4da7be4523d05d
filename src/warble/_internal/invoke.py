"""Invoke helper: call sync or async functions uniformly.

Function modules can export either ``def`` or ``async def`` callables.
The sync/async check lives here so the executor doesn't repeat it.

Usage::

    from warble._internal.invoke import invoke

    result = await invoke(fn, request, response)
"""

import inspect
from typing import Any


async def invoke(fn: Any, *args: Any, **kwargs: Any) -> Any:
    """Call *fn* and await the result if it's awaitable."""
    result = fn(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result
