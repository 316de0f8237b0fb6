import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pytest

from record_loader import AssociationResolutionError, ColumnPath


@dataclass
class Post:
    id: int
    title: str = ''


@dataclass
class Comment:
    id: int
    post_id: int
    post: Optional[Post] = None
    hidden: bool = False


class FakeSource:
    """in memory DataSource, records every query it receives"""

    def __init__(self, rows: Dict[type, List[Any]], columns: Dict[type, Dict[str, type]], associations=None):
        self.rows = rows
        self.columns = columns
        self.associations = associations or {}  # {model: {name: target model}}
        self.queries = []
        self.gate: Optional[asyncio.Event] = None
        self.error: Optional[Exception] = None

    def resolve_column(self, model, column):
        column = column or 'id'
        if column in self.columns[model]:
            return ColumnPath(name=column, value_type=self.columns[model][column], attr_fields=(column,))

        association_name, _, association_column = column.partition('.')
        target = self.associations.get(model, {}).get(association_name)
        if target is None:
            raise AssociationResolutionError(f'No association from {association_name} on {model.__name__}', association_name)
        return ColumnPath(
            name=column,
            value_type=self.columns[target][association_column],
            attr_fields=(association_name, association_column),
            association=association_name,
            association_model=target)

    async def find_rows_where(self, model, column, keys, where):
        self.queries.append((model, column.name, list(keys), dict(where)))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error

        return [
            row for row in self.rows[model]
            if set(column.extract(row)) & set(keys)
            and all(getattr(row, k) == v for k, v in where.items())
        ]


@pytest.fixture
def posts():
    return [Post(id=1, title='a'), Post(id=2, title='b'), Post(id=3, title='c')]


@pytest.fixture
def comments(posts):
    # post 3 has no comments
    return [
        Comment(id=1, post_id=1, post=posts[0]),
        Comment(id=2, post_id=1, post=posts[0], hidden=True),
        Comment(id=3, post_id=2, post=posts[1]),
        Comment(id=4, post_id=1, post=posts[0]),
        Comment(id=5, post_id=2, post=posts[1]),
    ]


@pytest.fixture
def source(posts, comments):
    return FakeSource(
        rows={Post: posts, Comment: comments},
        columns={
            Post: {'id': int, 'title': str},
            Comment: {'id': int, 'post_id': int, 'hidden': bool},
        },
        associations={Comment: {'post': Post}})
