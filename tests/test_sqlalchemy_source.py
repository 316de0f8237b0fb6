from typing import List, Optional
import pytest
from pydantic import BaseModel, ConfigDict
from sqlalchemy import ForeignKey
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from record_loader import (
    AssociationResolutionError,
    BatchCoordinator,
    ColumnPath,
    DataSourceError,
    RecordLoader,
    Resolver,
    SqlAlchemyDataSource,
    then,
    last_or_none)


class Base(DeclarativeBase):
    pass


class Post(Base):
    __tablename__ = "posts"

    id: Mapped[int] = mapped_column(primary_key=True)
    comments: Mapped[List["Comment"]] = relationship(back_populates="post")


class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(primary_key=True)
    post_id: Mapped[Optional[int]] = mapped_column(ForeignKey("posts.id"))
    post: Mapped[Optional[Post]] = relationship(back_populates="comments")


class CountingSource(SqlAlchemyDataSource):
    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.calls = []

    async def find_rows_where(self, model, column, keys, where):
        self.calls.append((model.__name__, column.name, sorted(keys)))
        return await super().find_rows_where(model, column, keys, where)


async def build_source(with_tables=True):
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
    )
    session_factory = async_sessionmaker(engine, expire_on_commit=False)

    if with_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        # 3 posts with 3 comments each, created round robin, post 4 has none
        async with session_factory() as session:
            async with session.begin():
                session.add_all([Post(id=i) for i in (1, 2, 3, 4)])
                session.add_all([Comment(id=i, post_id=(i - 1) % 3 + 1) for i in range(1, 10)])

    return CountingSource(session_factory)


class PostBrief(BaseModel):
    id: int
    model_config = ConfigDict(from_attributes=True)


class CommentSchema(BaseModel):
    id: int
    post_id: int
    post_detail: Optional[PostBrief] = None

    def resolve_post_detail(self):
        return then(RecordLoader.loader(Post).load(self.post_id), last_or_none)

    model_config = ConfigDict(from_attributes=True)


class PostSchema(BaseModel):
    id: int
    latest_comment: Optional[CommentSchema] = None

    def resolve_latest_comment(self):
        return then(RecordLoader.loader(Comment, column='post_id').load(self.id), last_or_none)

    model_config = ConfigDict(from_attributes=True)


def test_resolve_direct_column():
    source = SqlAlchemyDataSource(None)

    assert source.resolve_column(Comment, 'post_id') == ColumnPath(
        name='post_id', value_type=int, attr_fields=('post_id',))
    assert source.resolve_column(Post, None).name == 'id'


@pytest.mark.parametrize('column', ['post.id', 'posts.id'])
def test_resolve_association_path(column):
    path = SqlAlchemyDataSource(None).resolve_column(Comment, column)

    assert path.name == column
    assert path.value_type is int
    assert path.attr_fields == ('post', 'id')
    assert path.association == 'post'
    assert path.association_model is Post


def test_resolve_unknown_association():
    source = SqlAlchemyDataSource(None)

    with pytest.raises(AssociationResolutionError, match='No association from authors on Comment') as exc:
        source.resolve_column(Comment, 'authors.id')
    assert exc.value.segment == 'authors'

    with pytest.raises(AssociationResolutionError) as exc:
        source.resolve_column(Comment, 'post.title')
    assert exc.value.segment == 'title'


class AuthoringBase(DeclarativeBase):
    pass


class User(AuthoringBase):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)


class Article(AuthoringBase):
    __tablename__ = "articles"

    id: Mapped[int] = mapped_column(primary_key=True)
    author_id: Mapped[int] = mapped_column(ForeignKey("users.id"))
    editor_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))
    author: Mapped[User] = relationship(foreign_keys=[author_id])
    editor: Mapped[Optional[User]] = relationship(foreign_keys=[editor_id])


def test_table_name_matching_two_associations_is_ambiguous():
    source = SqlAlchemyDataSource(None)

    with pytest.raises(AssociationResolutionError, match='Ambiguous association users on Article') as exc:
        source.resolve_column(Article, 'users.id')
    assert exc.value.segment == 'users'

    path = source.resolve_column(Article, 'editor.id')
    assert path.attr_fields == ('editor', 'id')
    assert path.association_model is User


@pytest.mark.asyncio
async def test_latest_comment_per_post_with_one_query():
    source = await build_source()
    posts = [PostSchema(id=i) for i in (1, 2, 3, 4)]

    await Resolver(data_source=source, enable_from_attribute_in_type_adapter=True).resolve(posts)

    assert [p.latest_comment.id if p.latest_comment else None for p in posts] == [7, 8, 9, None]
    assert [p.latest_comment.post_detail.id for p in posts[:3]] == [1, 2, 3]
    assert source.calls == [
        ('Comment', 'post_id', [1, 2, 3, 4]),
        ('Post', 'id', [1, 2, 3]),
    ]


@pytest.mark.asyncio
async def test_load_through_association():
    source = await build_source()
    coordinator = BatchCoordinator(data_source=source, auto_dispatch=False)
    loader = RecordLoader.loader(Comment, column='posts.id', coordinator=coordinator)

    first = loader.load(1)
    second = loader.load('2')
    await coordinator.dispatch_pending()

    assert [c.id for c in first.result()] == [1, 4, 7]
    assert [c.id for c in second.result()] == [2, 5, 8]
    assert {c.post.id for c in first.result()} == {1}
    assert len(source.calls) == 1


@pytest.mark.asyncio
async def test_where_filter():
    source = await build_source()
    coordinator = BatchCoordinator(data_source=source, auto_dispatch=False)
    loader = RecordLoader.loader(Comment, column='post_id', where={'id': 4}, coordinator=coordinator)

    future = loader.load(1)
    await coordinator.dispatch_pending()

    assert [c.id for c in future.result()] == [4]


@pytest.mark.asyncio
async def test_query_error_fails_batch():
    source = await build_source(with_tables=False)
    coordinator = BatchCoordinator(data_source=source, auto_dispatch=False)
    loader = RecordLoader.loader(Comment, column='post_id', coordinator=coordinator)

    futures = [loader.load(1), loader.load(2)]
    await coordinator.dispatch_pending()

    for future in futures:
        error = future.exception()
        assert isinstance(error, DataSourceError)
        assert isinstance(error.__cause__, SQLAlchemyError)
