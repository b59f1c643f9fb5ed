"""Key-value translation backend for SQLAlchemy models.

Each translated attribute/locale pair of an owner is stored as one row in a
shared translation table, linked back to the owner by a polymorphic
``(translatable_type, translatable_id)`` reference::

    backend = KeyValueBackend()
    backend.declare_translated(Post, None, ["title"], "string")
    backend.bind(SessionLocal)

    post = Post(title="foo")
    post.string_translations[0].value
    #=> "foo"
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Type

from sqlalchemy import and_, delete, event, inspect as sa_inspect
from sqlalchemy.engine import Connection
from sqlalchemy.exc import NoInspectionAvailable, SQLAlchemyError
from sqlalchemy.orm import (
    Session,
    foreign,
    object_session,
    relationship,
    remote,
)
from sqlalchemy.orm.attributes import flag_dirty
from sqlalchemy.orm.util import identity_key

from polytrans.config import Options, settings
from polytrans.enums import TranslationStoreAction
from polytrans.errors import (
    ConfigurationError,
    DuplicateTranslationError,
    UnavailableLocaleError,
)
from polytrans.fallbacks import FallbacksGenerator, build_fallbacks
from polytrans.locales import get_locale, normalize_locale
from polytrans.models.schemas import OwnerReference, TranslationModel
from polytrans.models.translation import TranslationRecordMixin
from polytrans.registry import AttributeScopeRegistry, TranslationShapeRegistry

logger = logging.getLogger(__name__)


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _is_integer_column(column: Any) -> bool:
    try:
        return issubclass(column.type.python_type, int)
    except NotImplementedError:
        return False


@dataclass
class OwnerConfig:
    """Translation setup of one owner class."""

    owner_cls: type
    type_tag: str
    pk_attribute: Any
    scopes: AttributeScopeRegistry = field(default_factory=AttributeScopeRegistry)
    associations: Dict[str, Type[TranslationRecordMixin]] = field(default_factory=dict)

    def association_for(self, attribute: str) -> str:
        association_name = self.scopes.association_for(attribute)
        if association_name is None:
            raise ConfigurationError(
                f"{self.owner_cls.__name__}.{attribute} is not a translated attribute"
            )
        return association_name

    def shape_for(self, attribute: str) -> Type[TranslationRecordMixin]:
        return self.associations[self.association_for(attribute)]


class TranslatedAttribute:
    """Descriptor routing attribute access on the owner through the backend."""

    def __init__(self, backend: "KeyValueBackend", name: str) -> None:
        self.backend = backend
        self.name = name

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        return self.backend.read(instance, self.name)

    def __set__(self, instance: Any, value: Any) -> None:
        self.backend.write(instance, self.name, value)


class KeyValueBackend:
    def __init__(
        self,
        shapes: TranslationShapeRegistry | None = None,
        *,
        options: Mapping[str, Any] | None = None,
        fallbacks: FallbacksGenerator | None = None,
        available_locales: Iterable[str] | None = None,
    ) -> None:
        self.shapes = shapes or TranslationShapeRegistry.default()
        self.options = Options(settings.default_options)
        self.options.update(options or {})
        configured = self.options.get("fallbacks")
        if fallbacks is None:
            fallbacks = build_fallbacks(configured if isinstance(configured, Mapping) else None)
        self.fallbacks = fallbacks
        if available_locales is None:
            available_locales = settings.available_locales
        self.available_locales = frozenset(normalize_locale(code) for code in available_locales)
        self._owners: Dict[type, OwnerConfig] = {}
        self._tags: Dict[str, type] = {}
        self._info_key = f"polytrans.destroyed.{id(self)}"
        self._committed_key = f"{self._info_key}.committed"

    # -- declaration -------------------------------------------------------

    def declare_translated(
        self,
        owner_cls: type,
        association_name: str | None,
        attribute_keys: Iterable[str],
        value_record_shape: str | Type[TranslationRecordMixin] = "text",
        *,
        type_tag: str | None = None,
    ) -> OwnerConfig:
        shape = self.shapes.resolve(value_record_shape)
        association_name = association_name or f"{shape.type_tag}_translations"
        attribute_keys = [str(key) for key in attribute_keys]
        config = self._configure_owner(owner_cls, type_tag)
        mapper = sa_inspect(owner_cls)

        existing_shape = config.associations.get(association_name)
        if existing_shape is not None and existing_shape is not shape:
            raise ConfigurationError(
                f"{owner_cls.__name__}.{association_name} already stores "
                f"{existing_shape.__name__}, not {shape.__name__}"
            )
        if existing_shape is None and mapper.has_property(association_name):
            raise ConfigurationError(
                f"{owner_cls.__name__}.{association_name} is already a mapped attribute"
            )
        for attribute in attribute_keys:
            if mapper.has_property(attribute) or attribute == association_name:
                raise ConfigurationError(
                    f"{owner_cls.__name__}.{attribute} collides with a mapped attribute"
                )
            declared_in = config.scopes.association_for(attribute)
            if declared_in is not None and declared_in != association_name:
                raise ConfigurationError(
                    f"{owner_cls.__name__}.{attribute} is already translated "
                    f"through {declared_in}"
                )

        if existing_shape is not None and mapper.configured:
            added = set(attribute_keys) - config.scopes.scope_filter(association_name)
            if added:
                raise ConfigurationError(
                    f"Cannot add {sorted(added)} to {owner_cls.__name__}.{association_name}: "
                    f"the mapper is already configured; declare every attribute before first use"
                )

        keys = config.scopes.register(association_name, attribute_keys)
        if existing_shape is None:
            config.associations[association_name] = shape
            self._install_association(config, association_name, shape)
        for attribute in attribute_keys:
            setattr(owner_cls, attribute, TranslatedAttribute(self, attribute))

        self._log(
            TranslationStoreAction.DECLARE,
            owner=config.type_tag,
            association=association_name,
            keys=sorted(keys),
            shape=shape.__name__,
        )
        return config

    def owner_config(self, owner_cls: type) -> OwnerConfig:
        config = self._config_for(owner_cls)
        if config is None:
            raise ConfigurationError(f"{owner_cls.__name__} has no translated attributes")
        return config

    def scopes(self, owner_cls: type) -> AttributeScopeRegistry:
        return self.owner_config(owner_cls).scopes

    def _configure_owner(self, owner_cls: type, type_tag: str | None) -> OwnerConfig:
        config = self._owners.get(owner_cls)
        if config is not None:
            if type_tag and type_tag != config.type_tag:
                raise ConfigurationError(
                    f"{owner_cls.__name__} is already tagged {config.type_tag!r}"
                )
            return config
        try:
            mapper = sa_inspect(owner_cls)
        except NoInspectionAvailable:
            raise ConfigurationError(f"{owner_cls.__name__} is not a mapped class") from None
        if len(mapper.primary_key) != 1:
            raise ConfigurationError(
                f"{owner_cls.__name__} must have a single-column primary key"
            )
        if not _is_integer_column(mapper.primary_key[0]):
            raise ConfigurationError(
                f"{owner_cls.__name__} must have an integer primary key; "
                f"translatable_id stores integers only"
            )
        tag = type_tag or owner_cls.__name__
        if tag in self._tags:
            raise ConfigurationError(
                f"Type tag {tag!r} is already used by {self._tags[tag].__name__}"
            )
        pk_key = mapper.get_property_by_column(mapper.primary_key[0]).key
        config = OwnerConfig(
            owner_cls=owner_cls,
            type_tag=tag,
            pk_attribute=getattr(owner_cls, pk_key),
        )
        self._owners[owner_cls] = config
        self._tags[tag] = owner_cls
        return config

    def _install_association(
        self,
        config: OwnerConfig,
        association_name: str,
        shape: Type[TranslationRecordMixin],
    ) -> None:
        mapper = sa_inspect(config.owner_cls)
        overlaps = sorted(
            {
                name
                for other in self._owners.values()
                for name, other_shape in other.associations.items()
                if other_shape is shape
            }
        )
        mapper.add_property(
            association_name,
            relationship(
                shape,
                # Evaluated when mappers configure, so later declarations widen the key filter.
                primaryjoin=lambda: and_(
                    config.pk_attribute == foreign(remote(shape.translatable_id)),
                    shape.translatable_type == config.type_tag,
                    shape.key.in_(sorted(config.scopes.scope_filter(association_name))),
                ),
                cascade="all",
                passive_deletes=True,
                order_by=shape.id,
                overlaps=",".join(overlaps),
            ),
        )
        type_tag = config.type_tag

        def stamp_type_tag(target, value, initiator):
            value.translatable_type = type_tag

        event.listen(getattr(config.owner_cls, association_name), "append", stamp_type_tag)

    # -- runtime -----------------------------------------------------------

    def translation_for(self, owner: Any, attribute: str, locale: Any) -> TranslationRecordMixin:
        """Return the record for ``attribute`` in ``locale``, building one if absent.

        Built records are added to the owner's association, so they are saved
        with the owner and returned by later lookups before any save.
        """
        config = self.owner_config(type(owner))
        association_name = config.association_for(attribute)
        code = normalize_locale(locale)
        collection = self._collection(owner, association_name)
        matches = [t for t in collection if t.key == attribute and t.locale == code]
        if len(matches) > 1:
            raise DuplicateTranslationError(owner, attribute, code, len(matches))
        if matches:
            return matches[0]

        translation = config.associations[association_name](
            key=attribute, locale=code, translatable_type=config.type_tag
        )
        collection.append(translation)
        self._log(
            TranslationStoreAction.BUILD,
            owner=config.type_tag,
            key=attribute,
            locale=code,
        )
        return translation

    def read(
        self,
        owner: Any,
        attribute: str,
        locale: Any = None,
        fallback: bool | Sequence[str] | None = None,
    ) -> Any:
        code = normalize_locale(locale) if locale else get_locale()
        value = self.translation_for(owner, attribute, code).value
        if self.options.get("presence") and is_blank(value):
            value = None
        if value is not None:
            return value

        for candidate in self._fallback_chain(code, fallback):
            if candidate == code:
                continue
            translation = self._find(owner, attribute, candidate)
            if translation is not None and not is_blank(translation.value):
                return translation.value
        return value

    def write(self, owner: Any, attribute: str, value: Any, locale: Any = None) -> Any:
        code = normalize_locale(locale) if locale else get_locale()
        if self.available_locales and code not in self.available_locales:
            raise UnavailableLocaleError(code, self.available_locales)
        if self.options.get("presence") and is_blank(value):
            value = None
        translation = self.translation_for(owner, attribute, code)
        translation.value = value
        if sa_inspect(owner).persistent:
            flag_dirty(owner)
        return value

    def prune_blank(self, owner: Any) -> List[TranslationRecordMixin]:
        """Drop blank records from every loaded association of ``owner``.

        Previously persisted records are marked for deletion in the owner's
        session, so they go away in the same flush as the owner's changes.
        """
        config = self.owner_config(type(owner))
        state = sa_inspect(owner)
        session = object_session(owner)
        removed: List[TranslationRecordMixin] = []
        for association_name in config.associations:
            if association_name in state.unloaded:
                continue
            collection = getattr(owner, association_name)
            for translation in [t for t in collection if is_blank(t.value)]:
                collection.remove(translation)
                self._discard(session, translation)
                removed.append(translation)
        if removed:
            self._log(
                TranslationStoreAction.PRUNE_BLANK,
                owner=config.type_tag,
                records=[(t.key, t.locale) for t in removed],
            )
        return removed

    def cascade_delete(self, owner: Any, connection: Connection | Session) -> int:
        """Delete every record of ``owner`` across all translation tables."""
        reference = owner if isinstance(owner, OwnerReference) else self.owner_reference(owner)
        if reference.identifier is None:
            return 0
        deleted = 0
        for shape in self._all_shapes():
            table = shape.__table__
            result = connection.execute(
                delete(table).where(
                    table.c.translatable_type == reference.type_tag,
                    table.c.translatable_id == reference.identifier,
                )
            )
            deleted += max(result.rowcount or 0, 0)
        self._log(
            TranslationStoreAction.CASCADE_DELETE,
            owner=reference.type_tag,
            identifier=reference.identifier,
            deleted=deleted,
        )
        return deleted

    def duplicate_translations(self, source: Any, target: Any) -> None:
        config = self.owner_config(type(source))
        target_config = self.owner_config(type(target))
        if target_config is not config:
            raise ConfigurationError(
                f"Cannot copy {config.type_tag} translations onto {target_config.type_tag}"
            )
        target_session = object_session(target)
        for association_name, shape in config.associations.items():
            copies = [
                shape(
                    key=t.key,
                    locale=t.locale,
                    value=t.value,
                    translatable_type=config.type_tag,
                )
                for t in self._collection(source, association_name)
            ]
            collection = self._collection(target, association_name)
            for translation in list(collection):
                collection.remove(translation)
                self._discard(target_session, translation)
            collection.extend(copies)
        self._log(TranslationStoreAction.DUPLICATE, owner=config.type_tag)

    def duplicate(self, owner: Any) -> Any:
        """Return a transient copy of ``owner`` with independent translations."""
        mapper = sa_inspect(type(owner))
        pk_keys = {mapper.get_property_by_column(column).key for column in mapper.primary_key}
        values = {
            attr.key: getattr(owner, attr.key)
            for attr in mapper.column_attrs
            if attr.key not in pk_keys
        }
        clone = type(owner)(**values)
        self.duplicate_translations(owner, clone)
        return clone

    def owner_reference(self, owner: Any) -> OwnerReference:
        config = self.owner_config(type(owner))
        identifier = sa_inspect(type(owner)).primary_key_from_instance(owner)[0]
        return OwnerReference(type_tag=config.type_tag, identifier=identifier)

    def snapshot(self, owner: Any) -> List[TranslationModel]:
        config = self.owner_config(type(owner))
        return [
            TranslationModel.model_validate(translation)
            for association_name in config.associations
            for translation in self._collection(owner, association_name)
        ]

    # -- queries -----------------------------------------------------------

    def query(self, owner_cls: type):
        from polytrans.backends.query import LocaleQueryBuilder

        if not self.options.get("query"):
            raise ConfigurationError("Locale queries are disabled by the 'query' option")
        return LocaleQueryBuilder(self, owner_cls)

    def build_locale_predicate(
        self,
        owner_cls: type,
        association_name: str,
        attribute: str,
        locale_or_sequence: Any,
        operator: str = "eq",
        comparison_value: Any = None,
    ):
        config = self.owner_config(owner_cls)
        if attribute not in config.scopes.scope_filter(association_name):
            raise ConfigurationError(
                f"{attribute!r} is not declared under {owner_cls.__name__}.{association_name}"
            )
        return self.query(owner_cls).predicate(
            attribute, locale_or_sequence, operator, comparison_value
        )

    # -- session wiring ----------------------------------------------------

    def bind(self, target: Any) -> "KeyValueBackend":
        """Attach lifecycle hooks to a Session class, sessionmaker or session."""
        event.listen(target, "before_flush", self._before_flush)
        event.listen(target, "after_flush", self._after_flush)
        event.listen(target, "after_commit", self._after_commit)
        event.listen(target, "after_transaction_end", self._after_transaction_end)
        return self

    def unbind(self, target: Any) -> None:
        event.remove(target, "before_flush", self._before_flush)
        event.remove(target, "after_flush", self._after_flush)
        event.remove(target, "after_commit", self._after_commit)
        event.remove(target, "after_transaction_end", self._after_transaction_end)

    def _before_flush(self, session: Session, flush_context, instances) -> None:
        shapes = tuple(self._all_shapes())
        owners: Dict[int, Any] = {}
        blank_records: List[TranslationRecordMixin] = []
        for obj in list(session.new) + list(session.dirty):
            if self._config_for(type(obj)) is not None:
                owners[id(obj)] = obj
            elif shapes and isinstance(obj, shapes) and is_blank(obj.value):
                blank_records.append(obj)

        for translation in blank_records:
            owner = self._owner_in_session(session, translation)
            if owner is not None:
                owners.setdefault(id(owner), owner)

        pruned = {id(t) for owner in owners.values() for t in self.prune_blank(owner)}
        for translation in blank_records:
            if id(translation) not in pruned:
                self._discard(session, translation)

    def _after_flush(self, session: Session, flush_context) -> None:
        references = {
            self.owner_reference(obj)
            for obj in session.deleted
            if self._config_for(type(obj)) is not None
        }
        if references:
            scope = self._current_scope(session)
            self._destroyed(session).setdefault(scope, set()).update(references)

    def _after_commit(self, session: Session) -> None:
        transaction = self._current_scope(session)
        references = self._destroyed(session).pop(transaction, None)
        if not references:
            return
        if transaction.nested:
            # A released savepoint hands its owners to the enclosing transaction.
            parent = self._transaction_scope(transaction.parent)
            self._destroyed(session).setdefault(parent, set()).update(references)
        else:
            session.info[self._committed_key] = references

    def _after_transaction_end(self, session: Session, transaction) -> None:
        if transaction.parent is not None:
            # Savepoint rolled back, or already merged on release.
            session.info.get(self._info_key, {}).pop(transaction, None)
            return
        session.info.pop(self._info_key, None)
        committed = session.info.pop(self._committed_key, None)
        for reference in committed or ():
            try:
                bind = session.get_bind()
                engine = bind.engine if isinstance(bind, Connection) else bind
                with engine.begin() as connection:
                    self.cascade_delete(reference, connection)
            except SQLAlchemyError:
                logger.exception(
                    "Failed to delete translations owner=%s identifier=%s",
                    reference.type_tag,
                    reference.identifier,
                )
                self._log(
                    TranslationStoreAction.CASCADE_DELETE_FAILED,
                    owner=reference.type_tag,
                    identifier=reference.identifier,
                )

    def _destroyed(self, session: Session) -> Dict[Any, set]:
        return session.info.setdefault(self._info_key, {})

    def _current_scope(self, session: Session):
        return self._transaction_scope(
            session.get_nested_transaction() or session.get_transaction()
        )

    @staticmethod
    def _transaction_scope(transaction):
        while transaction.parent is not None and not transaction.nested:
            transaction = transaction.parent
        return transaction

    # -- helpers -----------------------------------------------------------

    def _config_for(self, cls: type) -> OwnerConfig | None:
        for klass in cls.__mro__:
            config = self._owners.get(klass)
            if config is not None:
                return config
        return None

    def _all_shapes(self) -> List[Type[TranslationRecordMixin]]:
        shapes = self.shapes.shapes()
        for config in self._owners.values():
            for shape in config.associations.values():
                if shape not in shapes:
                    shapes.append(shape)
        return shapes

    @staticmethod
    def _discard(session: Session | None, translation: TranslationRecordMixin) -> None:
        # Records are never orphaned in place: a NULL owner reference cannot be saved.
        if session is None:
            return
        state = sa_inspect(translation)
        if state.persistent:
            session.delete(translation)
        elif state.pending:
            session.expunge(translation)

    def _collection(self, owner: Any, association_name: str):
        session = object_session(owner)
        if session is None:
            return getattr(owner, association_name)
        with session.no_autoflush:
            return getattr(owner, association_name)

    def _find(self, owner: Any, attribute: str, locale: str) -> TranslationRecordMixin | None:
        association_name = self.owner_config(type(owner)).association_for(attribute)
        for translation in self._collection(owner, association_name):
            if translation.key == attribute and translation.locale == locale:
                return translation
        return None

    def _fallback_chain(self, locale: str, fallback: bool | Sequence[str] | None) -> List[str]:
        if fallback is None:
            fallback = bool(self.options.get("fallbacks"))
        if fallback is False:
            return []
        if fallback is True:
            return list(self.fallbacks(locale))
        return [normalize_locale(candidate) for candidate in fallback]

    def _owner_in_session(self, session: Session, translation: TranslationRecordMixin) -> Any:
        owner_cls = self._tags.get(translation.translatable_type)
        if owner_cls is None or translation.translatable_id is None:
            return None
        return session.identity_map.get(identity_key(owner_cls, translation.translatable_id))

    def _log(self, action: TranslationStoreAction, **fields: Any) -> None:
        logger.debug(
            "%s %s",
            action,
            " ".join(f"{name}={value}" for name, value in fields.items()),
        )


__all__ = [
    "KeyValueBackend",
    "OwnerConfig",
    "TranslatedAttribute",
    "is_blank",
]
