"""Unwrapping of anyio task group exception groups.

anyio wraps anything that escapes a task group, including the exception raised
by the body of an `async with`, in a `BaseExceptionGroup`. Callers of the
session and provider expect the classified `McpError` itself, so the context
managers exit their task groups through `exit_task_group`.
"""

from __future__ import annotations

import sys
from types import TracebackType

import anyio
from anyio.abc import TaskGroup

if sys.version_info < (3, 11):  # pragma: no cover
    from exceptiongroup import BaseExceptionGroup


def collapse_exception_group(
    eg: BaseExceptionGroup,
    cancelled_type: type[BaseException] | None = None,
) -> BaseException:
    """Reduce a task group's exception group to the single real error in it.

    Cancellations of sibling tasks are noise. If exactly one other exception
    remains it is returned, if only cancellations remain one of them is
    returned, and otherwise the group without the cancellations is returned.
    """
    if cancelled_type is None:
        cancelled_type = anyio.get_cancelled_exc_class()

    _, real = eg.split(cancelled_type)
    if real is None:
        return eg.exceptions[0]
    if len(real.exceptions) == 1:
        return real.exceptions[0]
    return real


async def exit_task_group(
    task_group: TaskGroup,
    exc_type: type[BaseException] | None,
    exc_val: BaseException | None,
    exc_tb: TracebackType | None,
) -> bool | None:
    """Exit a manually entered task group without wrapping the body's exception.

    When the only real error is the one raised by the `async with` body, the
    group is dropped and the body's exception propagates unchanged, keeping its
    own cause. A single failure from a background task is raised directly with
    the group as its cause.
    """
    try:
        return await task_group.__aexit__(exc_type, exc_val, exc_tb)
    except BaseExceptionGroup as eg:
        collapsed = collapse_exception_group(eg)
        if collapsed is exc_val:
            return False
        if collapsed is not eg:
            raise collapsed from eg
        raise
