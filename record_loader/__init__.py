from .coordinator import BatchCoordinator, LoaderKey, current_coordinator
from .loader import KeyedBatchLoader, RecordLoader
from .schema import ColumnPath, DataSource
from .sqlalchemy_source import SqlAlchemyDataSource
from .future import then, resolved, last_or_none
from .resolver import Resolver
from .exceptions import (
    RecordLoaderError,
    KeyCastError,
    AssociationResolutionError,
    DataSourceError,
    MissingCoordinatorError,
    MissingDataSourceError,
    MissingContextError)


__all__ = [
    'BatchCoordinator',
    'LoaderKey',
    'current_coordinator',
    'KeyedBatchLoader',
    'RecordLoader',
    'Resolver',

    'ColumnPath',
    'DataSource',
    'SqlAlchemyDataSource',

    'then',
    'resolved',
    'last_or_none',

    'RecordLoaderError',
    'KeyCastError',
    'AssociationResolutionError',
    'DataSourceError',
    'MissingCoordinatorError',
    'MissingDataSourceError',
    'MissingContextError',
]
