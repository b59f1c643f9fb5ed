from __future__ import annotations

import pytest
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from conftest import Post, backend
from polytrans import ConfigurationError


def _seed(session: Session) -> dict[str, int]:
    greeting = Post()
    backend.write(greeting, "title", "Hi", locale="en")
    french = Post()
    backend.write(french, "title", "Salut", locale="fr")
    both = Post()
    backend.write(both, "title", "Hi", locale="en")
    backend.write(both, "title", "Bonjour", locale="fr")
    backend.write(both, "subtitle", "Intro", locale="en")
    session.add_all([greeting, french, both])
    session.commit()
    return {"greeting": greeting.id, "french": french.id, "both": both.id}


def _ids(session: Session, *criteria) -> set[int]:
    return set(session.scalars(select(Post.id).where(*criteria)))


def test_locale_sequence_prefers_first_locale_with_value(session: Session) -> None:
    ids = _seed(session)
    query = backend.query(Post)

    assert _ids(session, query.predicate("title", ["fr", "en"], "eq", "Hi")) == {ids["greeting"]}
    assert _ids(session, query.predicate("title", ["fr", "en"], "eq", "Salut")) == {ids["french"]}
    assert _ids(session, query.predicate("title", ["fr", "en"], "eq", "Bonjour")) == {ids["both"]}


def test_single_locale_predicate(session: Session) -> None:
    ids = _seed(session)
    query = backend.query(Post)

    assert _ids(session, query.predicate("title", "en", "eq", "Hi")) == {ids["greeting"], ids["both"]}
    assert _ids(session, query.predicate("title", "fr", "like", "Sal%")) == {ids["french"]}
    assert _ids(session, query.predicate("title", "en", "ne", "Hi")) == set()


def test_none_matches_missing_translation(session: Session) -> None:
    ids = _seed(session)
    query = backend.query(Post)

    assert _ids(session, query.predicate("title", "en", "eq", None)) == {ids["french"]}
    assert _ids(session, query.predicate("title", "en", "ne", None)) == {ids["greeting"], ids["both"]}


def test_conditions_on_several_attributes(session: Session) -> None:
    ids = _seed(session)
    query = backend.query(Post)
    title = query.predicate("title", "en", "eq", "Hi")
    subtitle = query.predicate("subtitle", "en", "eq", "Intro")

    assert _ids(session, title, subtitle) == {ids["both"]}
    assert _ids(session, or_(subtitle, query.predicate("title", "fr", "eq", "Salut"))) == {
        ids["french"],
        ids["both"],
    }


def test_where_builds_conjunction(session: Session) -> None:
    ids = _seed(session)
    query = backend.query(Post)

    assert _ids(session, query.where(locale="en", title="Hi", subtitle="Intro")) == {ids["both"]}
    assert _ids(session, query.where(locale="fr", title=["Salut", "Bonjour"])) == {
        ids["french"],
        ids["both"],
    }
    assert _ids(session, query.where(locale="fr", fallback=True, title="Hi")) == {ids["greeting"]}
    assert _ids(session, query.where()) == set(ids.values())


def test_order_by_translated_value(session: Session) -> None:
    first = Post()
    backend.write(first, "title", "b", locale="en")
    second = Post()
    backend.write(second, "title", "a", locale="en")
    third = Post()
    backend.write(third, "title", "c", locale="en")
    session.add_all([first, second, third])
    session.commit()

    query = backend.query(Post)
    ascending = session.scalars(select(Post.id).order_by(query.order_by("title", "en"))).all()
    descending = session.scalars(
        select(Post.id).order_by(query.order_by("title", "en", descending=True))
    ).all()

    assert ascending == [second.id, first.id, third.id]
    assert descending == [third.id, first.id, second.id]


def test_value_expression_is_reused() -> None:
    query = backend.query(Post)
    assert query.value("title", "en") is query.value("title", ["en"])
    assert query.value("title", ["fr", "en"]) is not query.value("title", ["en", "fr"])


def test_unsupported_operator() -> None:
    with pytest.raises(ValueError):
        backend.query(Post).predicate("title", "en", "between", "x")


def test_locale_predicate_checks_association_scope(session: Session) -> None:
    ids = _seed(session)

    clause = backend.build_locale_predicate(Post, "subtitle_translations", "subtitle", "en", "eq", "Intro")
    assert _ids(session, clause) == {ids["both"]}

    with pytest.raises(ConfigurationError):
        backend.build_locale_predicate(Post, "string_translations", "subtitle", "en")


def test_untranslated_attribute_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        backend.query(Post).predicate("published", "en", "eq", True)


def test_locale_set_is_rejected() -> None:
    with pytest.raises(ValueError):
        backend.query(Post).predicate("title", {"fr", "en"}, "eq", "Hi")


def test_locale_iterable_keeps_order(session: Session) -> None:
    ids = _seed(session)
    locales = (code for code in ["fr", "en"])
    assert _ids(session, backend.query(Post).predicate("title", locales, "eq", "Hi")) == {ids["greeting"]}


def test_membership_operator_needs_collection() -> None:
    query = backend.query(Post)
    with pytest.raises(ValueError):
        query.predicate("title", "en", "in", None)
    with pytest.raises(ValueError):
        query.predicate("title", "en", "not_in", "Hi")


def test_queries_can_be_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setitem(backend.options, "query", False)
    with pytest.raises(ConfigurationError):
        backend.query(Post)
    with pytest.raises(ConfigurationError):
        backend.build_locale_predicate(Post, "string_translations", "title", "en")


def test_value_cache_can_be_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setitem(backend.options, "cache", False)
    query = backend.query(Post)
    assert query.value("title", "en") is not query.value("title", "en")
