import os
import asyncio
import contextvars
from contextlib import contextmanager
from typing import Any, Callable, Dict, Hashable, Mapping, NamedTuple, Optional, Set, Tuple

import record_loader.constant as const
from record_loader.exceptions import MissingCoordinatorError
from record_loader.utils.logger import get_logger
from record_loader.utils.profile import Profile

logger = get_logger(__name__)

_current_coordinator: contextvars.ContextVar[Optional['BatchCoordinator']] = \
    contextvars.ContextVar(const.COORDINATOR_CONTEXT_VAR, default=None)


class LoaderKey(NamedTuple):
    loader_kls: type
    model: Any
    column: Optional[str]
    where: Tuple[Tuple[str, Any], ...]

    @classmethod
    def build(
            cls,
            loader_kls: type,
            model: Any,
            column: Optional[str] = None,
            where: Optional[Mapping[str, Any]] = None) -> 'LoaderKey':
        return cls(loader_kls, model, column, tuple(sorted((where or {}).items())))


def current_coordinator() -> 'BatchCoordinator':
    coordinator = _current_coordinator.get()
    if coordinator is None:
        raise MissingCoordinatorError('no BatchCoordinator bound, use `with coordinator.scope():` or Resolver')
    return coordinator


class BatchCoordinator:
    """
    registry of loader instances for one execution scope (eg: one request),
    and the driver of batch cycles.

    auto_dispatch=True: the first pending key of a loader schedules a dispatch
    with loop.call_soon, it runs after the work that is ready in the current
    loop iteration.

    auto_dispatch=False: caller runs `await coordinator.dispatch_pending()`
    whenever it can't make progress without loader results.
    """

    def __init__(
            self,
            data_source=None,
            auto_dispatch: bool = True,
            debug: bool = False):
        self.data_source = data_source
        self.auto_dispatch = auto_dispatch
        self.debug = debug or os.getenv(const.DEBUG_ENV, "false").lower() == "true"
        self.performance = Profile()
        self.cycles = 0

        self._loaders: Dict[Hashable, Any] = {}
        self._dispatch_handle: Optional[asyncio.Handle] = None
        self._dispatch_tasks: Set[asyncio.Task] = set()

    @property
    def loaders(self):
        return list(self._loaders.values())

    def get_or_create(self, loader_key: Hashable, factory: Callable[[], Any]):
        loader = self._loaders.get(loader_key)
        if loader is None:
            loader = factory()
            self._loaders[loader_key] = loader
            logger.debug(f'loader created: {getattr(loader, "name", loader)}')
        return loader

    def has_pending(self) -> bool:
        return any(loader.has_pending() for loader in self._loaders.values())

    def notify_pending(self, loader):
        if not self.auto_dispatch or self._dispatch_handle is not None:
            return
        loop = asyncio.get_running_loop()
        self._dispatch_handle = loop.call_soon(self._start_dispatch)

    def _start_dispatch(self):
        self._dispatch_handle = None
        task = asyncio.ensure_future(self.dispatch_pending())
        # keep a strong reference until the task finishes
        self._dispatch_tasks.add(task)
        task.add_done_callback(self._dispatch_tasks.discard)

    async def _perform(self, loader):
        if not self.debug:
            await loader.perform_batch()
            return

        with self.performance.measure(loader.name, keys=loader.pending_count()):
            await loader.perform_batch()

    async def dispatch_pending(self) -> int:
        """
        run batch cycles until no loader has pending keys.

        keys enqueued while a cycle is in flight, or by continuations of the
        futures it fulfilled, are picked up by the next cycle.
        """
        cycles = 0
        while True:
            loaders = [loader for loader in self._loaders.values() if loader.has_pending()]
            if not loaders:
                break

            cycles += 1
            self.cycles += 1
            await asyncio.gather(*[self._perform(loader) for loader in loaders])

            # let continuations of fulfilled futures run
            await asyncio.sleep(0)

        if cycles:
            logger.debug(f'dispatch finished after {cycles} cycle(s)')
        return cycles

    def clear(self):
        if self._dispatch_handle is not None:
            self._dispatch_handle.cancel()
            self._dispatch_handle = None
        self._loaders.clear()

    @contextmanager
    def scope(self):
        token = _current_coordinator.set(self)
        try:
            yield self
        finally:
            _current_coordinator.reset(token)
            self.clear()

    def report(self):
        self.performance.report()
