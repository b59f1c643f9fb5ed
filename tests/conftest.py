from __future__ import annotations

from typing import Iterator

import pytest
from sqlalchemy import Boolean, Integer, String, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Mapped, Session, mapped_column, sessionmaker

from polytrans import KeyValueBackend
from polytrans.config import Settings
from polytrans.database import build_engine, build_session_factory
from polytrans.models import Base


class Post(Base):
    __tablename__ = "posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    published: Mapped[bool] = mapped_column(Boolean, default=False)


class Article(Base):
    __tablename__ = "articles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    slug: Mapped[str | None] = mapped_column(String(64), nullable=True)


class Page(Base):
    __tablename__ = "pages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)


backend = KeyValueBackend(options={"fallbacks": {"fr": ["en"]}})
backend.declare_translated(Post, None, ["title"], "string")
backend.declare_translated(Post, "subtitle_translations", ["subtitle"], "string")
backend.declare_translated(Post, None, ["content"], "text")
backend.declare_translated(Article, None, ["title"], "string")
backend.declare_translated(Article, "summary_translations", ["summary"], "text")
# The second Page declaration extends the first one's scope.
backend.declare_translated(Page, "string_translations", ["title"], "string")
backend.declare_translated(Page, "string_translations", ["headline"], "string")


@pytest.fixture
def engine() -> Iterator[Engine]:
    engine = build_engine(Settings(database_url="sqlite+pysqlite:///:memory:"))
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker:
    return build_session_factory(engine, backend=backend)


@pytest.fixture
def session(session_factory: sessionmaker) -> Iterator[Session]:
    session = session_factory()
    yield session
    session.close()


def count_rows(session: Session, shape: type, **filters) -> int:
    stmt = select(func.count()).select_from(shape)
    for name, value in filters.items():
        stmt = stmt.where(getattr(shape, name) == value)
    return session.execute(stmt).scalar_one()
