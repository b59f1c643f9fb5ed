from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, Tuple

from sqlalchemy import and_, func, select, true
from sqlalchemy.orm import aliased
from sqlalchemy.sql.elements import ColumnElement

from polytrans.enums import QueryAction
from polytrans.locales import get_locale, normalize_locale

if TYPE_CHECKING:
    from polytrans.backends.key_value import KeyValueBackend

logger = logging.getLogger(__name__)

_OPERATORS: Dict[str, Callable[[ColumnElement, Any], ColumnElement]] = {
    "eq": lambda column, value: column == value,
    "ne": lambda column, value: column != value,
    "lt": lambda column, value: column < value,
    "le": lambda column, value: column <= value,
    "gt": lambda column, value: column > value,
    "ge": lambda column, value: column >= value,
    "like": lambda column, value: column.like(value),
    "ilike": lambda column, value: column.ilike(value),
    "in": lambda column, value: column.in_(list(value)),
    "not_in": lambda column, value: column.not_in(list(value)),
}


class LocaleQueryBuilder:
    """Builds filters and orderings on translated attributes of one owner class.

    Every ``(attribute, locale)`` pair reads from its own aliased translation
    record, as a correlated scalar subquery. A locale sequence becomes a
    COALESCE over those subqueries in priority order, so fallbacks resolve in
    a single statement. With the ``cache`` option on, value expressions are
    cached per builder: a filter and an ``order_by`` built from the same
    builder share one target.

        query = backend.query(Post)
        stmt = (
            select(Post)
            .where(query.predicate("title", ["fr", "en"], "eq", "Hi"))
            .order_by(query.order_by("title", ["fr", "en"]))
        )
    """

    def __init__(self, backend: "KeyValueBackend", owner_cls: type) -> None:
        self.backend = backend
        self.owner_cls = owner_cls
        self.config = backend.owner_config(owner_cls)
        self._values: Dict[Tuple[str, Tuple[str, ...]], ColumnElement] = {}

    def value(self, attribute: str, locales: Any = None) -> ColumnElement:
        codes = self._locales(locales)
        cache_key = (attribute, codes)
        if cache_key in self._values:
            return self._values[cache_key]
        shape = self.config.shape_for(attribute)
        columns = [self._translated_value(shape, attribute, code) for code in codes]
        column = columns[0] if len(columns) == 1 else func.coalesce(*columns)
        if self.backend.options.get("cache"):
            self._values[cache_key] = column
        return column

    def predicate(
        self,
        attribute: str,
        locales: Any = None,
        operator: str = "eq",
        comparison_value: Any = None,
    ) -> ColumnElement:
        codes = self._locales(locales)
        column = self.value(attribute, codes)
        if comparison_value is None and operator in ("eq", "ne"):
            clause = column.is_(None) if operator == "eq" else column.is_not(None)
        else:
            try:
                build = _OPERATORS[operator]
            except KeyError:
                raise ValueError(
                    f"Unsupported operator {operator!r}; expected one of {sorted(_OPERATORS)}"
                ) from None
            if operator in ("in", "not_in") and (
                comparison_value is None or isinstance(comparison_value, str)
            ):
                raise ValueError(f"Operator {operator!r} needs a collection of values")
            clause = build(column, comparison_value)
        self._log(
            QueryAction.BUILD_PREDICATE,
            attribute=attribute,
            locales=",".join(codes),
            operator=operator,
        )
        return clause

    def where(self, locale: Any = None, fallback: bool = False, **conditions: Any) -> ColumnElement:
        """AND of equality conditions; collection values match with IN."""
        code = normalize_locale(locale) if locale else get_locale()
        locales = list(self.backend.fallbacks(code)) if fallback else [code]
        clauses = []
        for attribute, expected in conditions.items():
            if isinstance(expected, (list, tuple, set, frozenset)):
                clauses.append(self.predicate(attribute, locales, "in", expected))
            else:
                clauses.append(self.predicate(attribute, locales, "eq", expected))
        return and_(*clauses) if clauses else true()

    def order_by(self, attribute: str, locales: Any = None, descending: bool = False) -> ColumnElement:
        column = self.value(attribute, locales)
        self._log(QueryAction.BUILD_ORDER, attribute=attribute, descending=descending)
        return column.desc() if descending else column.asc()

    def _locales(self, locales: Any) -> Tuple[str, ...]:
        if locales is None:
            return (get_locale(),)
        if isinstance(locales, (set, frozenset)):
            raise ValueError("Locales must be ordered by priority; got an unordered set")
        if isinstance(locales, str) or not isinstance(locales, Iterable):
            return (normalize_locale(locales),)
        codes: list[str] = []
        for locale in locales:
            code = normalize_locale(locale)
            if code not in codes:
                codes.append(code)
        if not codes:
            raise ValueError("At least one locale is required")
        return tuple(codes)

    def _translated_value(self, shape: type, attribute: str, locale: str) -> ColumnElement:
        record = aliased(shape, name=_alias_name(attribute, locale))
        return (
            select(record.value)
            .where(
                record.translatable_type == self.config.type_tag,
                record.translatable_id == self.config.pk_attribute,
                record.key == attribute,
                record.locale == locale,
            )
            .correlate(self.owner_cls)
            .scalar_subquery()
        )

    def _log(self, action: QueryAction, **fields: Any) -> None:
        logger.debug(
            "%s owner=%s %s",
            action,
            self.config.type_tag,
            " ".join(f"{name}={value}" for name, value in fields.items()),
        )


def _alias_name(attribute: str, locale: str) -> str:
    return re.sub(r"\W", "_", f"{attribute}_{locale}_translations").lower()
