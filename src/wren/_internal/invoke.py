"""Invoke helpers — call sync or async user callables uniformly.

Handlers, dependency factories, cleanups, and error handlers can all be
``def`` or ``async def``. This module keeps the sync/async check (and the
"does it want the request?" check) in exactly one place.

Usage::

    from wren._internal.invoke import invoke

    result = await invoke(handler, *args, **kwargs)
"""

import inspect
from typing import Any


async def invoke(func: Any, *args: Any, **kwargs: Any) -> Any:
    """Call *func* and await the result if it's awaitable."""
    result = func(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


def positional_arity(func: Any) -> int:
    """Number of positional parameters *func* accepts (``*args`` counts as many)."""
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError):
        return 0
    count = 0
    for param in sig.parameters.values():
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            return 1 << 16
        if param.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            count += 1
    return count


def call_with_optional(func: Any, *args: Any) -> Any:
    """Call *func* with as many leading *args* as its signature accepts.

    Lets user callables take zero, one (request), or two (request, exc)
    arguments without the framework caring which.
    """
    return func(*args[: positional_arity(func)])
