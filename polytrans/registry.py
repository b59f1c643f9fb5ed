from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Iterable, Iterator, Type

from polytrans.errors import ConfigurationError
from polytrans.models.translation import (
    StringTranslation,
    TextTranslation,
    TranslationRecordMixin,
)

logger = logging.getLogger(__name__)

_REQUIRED_COLUMNS = ("translatable_type", "translatable_id", "key", "locale", "value")


class AttributeScopeRegistry:
    """Attribute keys declared under each association of one owner class.

    Repeated registrations union into the existing set so an association
    never forgets attributes declared by an earlier call.
    """

    def __init__(self) -> None:
        self._scopes: Dict[str, set[str]] = {}

    def register(self, association_name: str, attribute_keys: Iterable[str]) -> FrozenSet[str]:
        keys = {str(key) for key in attribute_keys}
        scope = self._scopes.setdefault(association_name, set())
        scope.update(keys)
        return frozenset(scope)

    def scope_filter(self, association_name: str) -> FrozenSet[str]:
        return frozenset(self._scopes.get(association_name, ()))

    def association_for(self, attribute: str) -> str | None:
        for association_name, keys in self._scopes.items():
            if attribute in keys:
                return association_name
        return None

    def __contains__(self, association_name: object) -> bool:
        return association_name in self._scopes

    def __iter__(self) -> Iterator[str]:
        return iter(self._scopes)


class TranslationShapeRegistry:
    """Explicit mapping of short type tags to translation record classes."""

    def __init__(self) -> None:
        self._shapes: Dict[str, Type[TranslationRecordMixin]] = {}

    @classmethod
    def default(cls) -> "TranslationShapeRegistry":
        registry = cls()
        registry.register("string", StringTranslation)
        registry.register("text", TextTranslation)
        return registry

    def register(self, tag: str, shape: Type[TranslationRecordMixin]) -> None:
        self._validate(shape)
        self._shapes[tag] = shape
        logger.debug("Registered translation shape tag=%s class=%s", tag, shape.__name__)

    def resolve(
        self, shape: str | Type[TranslationRecordMixin]
    ) -> Type[TranslationRecordMixin]:
        if isinstance(shape, type):
            self._validate(shape)
            return shape
        tag = str(shape)
        try:
            return self._shapes[tag]
        except KeyError:
            raise ConfigurationError(
                f"You must define a {tag.capitalize()}Translation shape registered "
                f"under {tag!r}; known shapes: {sorted(self._shapes)}"
            ) from None

    def shapes(self) -> list[Type[TranslationRecordMixin]]:
        seen: list[Type[TranslationRecordMixin]] = []
        for shape in self._shapes.values():
            if shape not in seen:
                seen.append(shape)
        return seen

    @staticmethod
    def _validate(shape: type) -> None:
        table = getattr(shape, "__table__", None)
        if table is None:
            raise ConfigurationError(f"{shape.__name__} is not a mapped table class")
        missing = [name for name in _REQUIRED_COLUMNS if name not in table.c]
        if missing:
            raise ConfigurationError(
                f"{shape.__name__} lacks translation columns: {', '.join(missing)}"
            )
