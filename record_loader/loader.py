import asyncio
from typing import Any, Dict, Hashable, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from record_loader.coordinator import BatchCoordinator, LoaderKey, current_coordinator
from record_loader.exceptions import DataSourceError, KeyCastError, MissingDataSourceError
from record_loader.schema import ColumnPath, DataSource
from record_loader.utils.conversion import cast_value
from record_loader.utils.dataloader import group_by
from record_loader.utils.logger import get_logger

logger = get_logger(__name__)


class KeyedBatchLoader:
    """
    load rows of `model` whose `column` equals the key, batched.

        loader = RecordLoader.loader(Comment, column='post_id')
        comments = await loader.load(post.id)

    every call with the same (cast) key shares one future, all keys pending
    at dispatch time are fetched with one query, and each future is fulfilled
    at most once: a key already fulfilled (by `fulfill`, `prime` or an
    overlapping batch) is skipped by later batches.

    column can be a direct column or `association.column`:

        RecordLoader.loader(Comment, column='posts.id')
    """

    def __init__(
            self,
            data_source: DataSource,
            model: type,
            column: Optional[str] = None,
            where: Optional[Mapping[str, Any]] = None,
            *,
            coordinator: BatchCoordinator):
        self.data_source = data_source
        self.model = model
        self.column_path: ColumnPath = data_source.resolve_column(model, column)
        self.where: Dict[str, Any] = dict(where or {})
        self.coordinator = coordinator
        self.batch_count = 0

        # every known key -> future, pending / in flight / fulfilled
        self._slots: Dict[Hashable, asyncio.Future] = {}
        # keys waiting for the next batch, in load order
        self._pending: Dict[Hashable, asyncio.Future] = {}

    @classmethod
    def loader(
            cls,
            model: type,
            column: Optional[str] = None,
            where: Optional[Mapping[str, Any]] = None,
            *,
            coordinator: Optional[BatchCoordinator] = None,
            data_source: Optional[DataSource] = None):
        """shared instance for (cls, model, column, where) in the current scope"""
        coordinator = coordinator or current_coordinator()
        loader_key = LoaderKey.build(cls, model, column, where)

        def factory():
            source = data_source or coordinator.data_source
            if source is None:
                raise MissingDataSourceError(f'no data source for {cls.__name__}({model.__name__})')
            return cls(source, model, column, where, coordinator=coordinator)

        return coordinator.get_or_create(loader_key, factory)

    @property
    def name(self) -> str:
        name = f'{self.__class__.__name__}({self.model.__name__}.{self.column_path.name})'
        if self.where:
            conditions = ', '.join(f'{k}={v!r}' for k, v in self.where.items())
            name = f'{name}[{conditions}]'
        return name

    def __repr__(self) -> str:
        return f'<{self.name} pending={len(self._pending)} known={len(self._slots)}>'

    def cast(self, raw_key) -> Hashable:
        try:
            key = cast_value(self.column_path.value_type, raw_key)
            hash(key)
        except (ValidationError, TypeError) as e:
            raise KeyCastError(raw_key, self.column_path.value_type, self.name) from e
        return key

    def has_pending(self) -> bool:
        return bool(self._pending)

    def pending_count(self) -> int:
        return len(self._pending)

    def is_fulfilled(self, raw_key) -> bool:
        future = self._slots.get(self.cast(raw_key))
        return future is not None and future.done()

    def load(self, raw_key) -> 'asyncio.Future[List[Any]]':
        key = self.cast(raw_key)

        future = self._slots.get(key)
        if future is not None:
            return future

        future = asyncio.get_running_loop().create_future()
        self._slots[key] = future
        self._pending[key] = future

        if len(self._pending) == 1:
            self.coordinator.notify_pending(self)
        return future

    def load_many(self, raw_keys: Iterable) -> 'asyncio.Future[List[List[Any]]]':
        return asyncio.gather(*[self.load(raw_key) for raw_key in raw_keys])

    def fulfill(self, raw_key, value) -> bool:
        """
        fulfill the key with value, return False if it was fulfilled before.
        a pending key is removed from the next batch.
        """
        key = self.cast(raw_key)
        future = self._slots.get(key)
        if future is None:
            future = asyncio.get_running_loop().create_future()
            self._slots[key] = future

        self._pending.pop(key, None)
        return self._fulfill(key, future, value)

    def prime(self, raw_key, value) -> 'KeyedBatchLoader':
        self.fulfill(raw_key, value)
        return self

    def clear(self, raw_key) -> 'KeyedBatchLoader':
        key = self.cast(raw_key)
        self._slots.pop(key, None)
        self._pending.pop(key, None)
        return self

    def clear_all(self) -> 'KeyedBatchLoader':
        self._slots.clear()
        self._pending.clear()
        return self

    def _fulfill(self, key: Hashable, future: asyncio.Future, value) -> bool:
        if future.done():
            return False
        future.set_result(value)
        return True

    def _fail(self, batch: Dict[Hashable, asyncio.Future], error: Exception):
        for key, future in batch.items():
            # fulfilled while in flight, keep the result
            if future.done():
                continue
            future.set_exception(error)
            if self._slots.get(key) is future:
                del self._slots[key]

    async def perform_batch(self):
        """
        fetch every pending key with one query and fulfill the futures.
        called by BatchCoordinator.dispatch_pending
        """
        if not self._pending:
            return

        batch, self._pending = self._pending, {}
        keys = list(batch.keys())
        self.batch_count += 1
        logger.debug(f'{self.name}: batch #{self.batch_count} with {len(keys)} key(s)')

        try:
            rows = await self.data_source.find_rows_where(self.model, self.column_path, keys, self.where)
            records = group_by(rows, self.column_path.extract)
        except Exception as e:
            if isinstance(e, DataSourceError):
                error = e
            else:
                error = DataSourceError(f'{self.name}: batch query failed, {e}')
                error.__cause__ = e
            logger.error(f'{self.name}: batch #{self.batch_count} failed for {len(keys)} key(s): {e}')
            self._fail(batch, error)
            return

        for key, future in batch.items():
            self._fulfill(key, future, records.get(key, []))


RecordLoader = KeyedBatchLoader
