import asyncio
from typing import List, Optional
from pydantic import BaseModel, ConfigDict
from sqlalchemy import ForeignKey
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.orm import Mapped
from sqlalchemy.orm import mapped_column
from sqlalchemy.orm import relationship
from record_loader import Resolver, RecordLoader, SqlAlchemyDataSource, then, last_or_none
from pprint import pprint

engine = create_async_engine(
    "sqlite+aiosqlite://",
    echo=True,
)
async_session = async_sessionmaker(engine, expire_on_commit=False)

# =========================== ORM layer =========================
class Base(DeclarativeBase):
    pass

class Post(Base):
    __tablename__ = "posts"

    id: Mapped[int] = mapped_column(primary_key=True)
    comments: Mapped[List["Comment"]] = relationship(back_populates="post")

class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(primary_key=True)
    post_id: Mapped[int] = mapped_column(ForeignKey("posts.id"))
    post: Mapped[Post] = relationship(back_populates="comments")

async def insert_objects() -> None:
    async with async_session() as session:
        async with session.begin():
            session.add_all([Post(id=i) for i in (1, 2, 3)])
            session.add_all([Comment(id=i, post_id=(i - 1) // 3 + 1) for i in range(1, 10)])

# =========================== Pydantic Schema layer =========================
class CommentSchema(BaseModel):
    id: int
    post_id: int
    model_config = ConfigDict(from_attributes=True)

class PostSchema(BaseModel):
    id: int
    latest_comment: Optional[CommentSchema] = None

    def resolve_latest_comment(self):
        # one query for every post in this resolve()
        return then(RecordLoader.loader(Comment, column='post_id').load(self.id), last_or_none)

    model_config = ConfigDict(from_attributes=True)

async def main():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await insert_objects()

    posts = [PostSchema(id=i) for i in (1, 2, 3)]
    posts = await Resolver(
        data_source=SqlAlchemyDataSource(async_session),
        enable_from_attribute_in_type_adapter=True).resolve(posts)
    pprint([p.model_dump() for p in posts])

asyncio.run(main())
