import asyncio
from inspect import isawaitable
from typing import Any, Callable, Optional, Sequence


def resolved(value: Any) -> asyncio.Future:
    future = asyncio.get_running_loop().create_future()
    future.set_result(value)
    return future


def _copy_state(source: asyncio.Future, target: asyncio.Future):
    if target.done():
        return
    if source.cancelled():
        target.cancel()
        return
    exc = source.exception()
    if exc is not None:
        target.set_exception(exc)
    else:
        target.set_result(source.result())


def then(source, fn: Callable[[Any], Any]) -> asyncio.Future:
    """
    chain a continuation on a loader future, like promise.then

        then(RecordLoader.loader(Comment, 'post_id').load(post.id), last_or_none)

    if fn returns an awaitable (eg: another load), the returned future
    resolves with its result. errors of source or fn propagate.
    """
    source = asyncio.ensure_future(source)
    target = source.get_loop().create_future()

    def on_done(fut: asyncio.Future):
        if target.done():
            return
        if fut.cancelled():
            target.cancel()
            return
        exc = fut.exception()
        if exc is not None:
            target.set_exception(exc)
            return

        try:
            value = fn(fut.result())
        except Exception as e:
            target.set_exception(e)
            return

        if asyncio.isfuture(value) or isawaitable(value):
            inner = asyncio.ensure_future(value)
            inner.add_done_callback(lambda f: _copy_state(f, target))
        else:
            target.set_result(value)

    source.add_done_callback(on_done)
    return target


def last_or_none(rows: Sequence[Any]) -> Optional[Any]:
    return rows[-1] if rows else None
