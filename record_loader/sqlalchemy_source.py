from typing import Any, Hashable, Mapping, Optional, Sequence

from sqlalchemy import inspect as sa_inspect
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import contains_eager

from record_loader.exceptions import AssociationResolutionError, DataSourceError
from record_loader.schema import ColumnPath


def _python_type(column_property) -> Any:
    try:
        return column_property.columns[0].type.python_type
    except NotImplementedError:
        return Any


class SqlAlchemyDataSource:
    """
    DataSource over SQLAlchemy async ORM models.

        engine = create_async_engine("sqlite+aiosqlite://")
        source = SqlAlchemyDataSource(async_sessionmaker(engine, expire_on_commit=False))

    rows are returned in primary key order.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    def _find_relationship(self, mapper, name: str):
        for relationship in mapper.relationships:
            if relationship.key == name:
                return relationship
        # `posts.id` on Comment, match by table name of the related model
        matches = [r for r in mapper.relationships if getattr(r.target, 'name', None) == name]
        if len(matches) > 1:
            keys = ', '.join(sorted(r.key for r in matches))
            raise AssociationResolutionError(
                f'Ambiguous association {name} on {mapper.class_.__name__}, use one of: {keys}',
                segment=name)
        return matches[0] if matches else None

    def resolve_column(self, model: type, column: Optional[str]) -> ColumnPath:
        mapper = sa_inspect(model)

        if column is None:
            primary_key = mapper.primary_key
            if len(primary_key) != 1:
                raise AttributeError(f'{model.__name__} needs a single column primary key, or pass column explicitly')
            column = mapper.get_property_by_column(primary_key[0]).key

        if column in mapper.column_attrs:
            return ColumnPath(
                name=column,
                value_type=_python_type(mapper.column_attrs[column]),
                attr_fields=(column,))

        association_name, _, association_column = column.partition('.')
        relationship = self._find_relationship(mapper, association_name)

        if relationship is None:
            raise AssociationResolutionError(
                f'No association from {association_name} on {model.__name__}',
                segment=association_name)

        target_mapper = relationship.mapper
        if not association_column or association_column not in target_mapper.column_attrs:
            raise AssociationResolutionError(
                f'No column {association_column!r} on {target_mapper.class_.__name__} '
                f'(association {relationship.key} of {model.__name__})',
                segment=association_column)

        return ColumnPath(
            name=column,
            value_type=_python_type(target_mapper.column_attrs[association_column]),
            attr_fields=(relationship.key, association_column),
            association=relationship.key,
            association_model=target_mapper.class_)

    def build_query(
            self,
            model: type,
            column: ColumnPath,
            keys: Sequence[Hashable],
            where: Mapping[str, Any]):
        stmt = select(model)

        if column.is_association:
            association = getattr(model, column.association)
            target_column = getattr(column.association_model, column.attr_fields[-1])
            stmt = stmt.join(association) \
                .options(contains_eager(association)) \
                .where(target_column.in_(keys))
        else:
            stmt = stmt.where(getattr(model, column.attr_fields[0]).in_(keys))

        for name, value in where.items():
            stmt = stmt.where(getattr(model, name) == value)

        return stmt.order_by(*sa_inspect(model).primary_key)

    async def find_rows_where(
            self,
            model: type,
            column: ColumnPath,
            keys: Sequence[Hashable],
            where: Mapping[str, Any]) -> Sequence[Any]:
        stmt = self.build_query(model, column, keys, where)
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return result.unique().scalars().all()
        except SQLAlchemyError as e:
            raise DataSourceError(f'query on {model.__name__} failed: {e}') from e
