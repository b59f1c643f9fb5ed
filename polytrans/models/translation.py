from datetime import datetime
from typing import ClassVar

from sqlalchemy import DateTime, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from polytrans.models.base import Base
from polytrans.models.schemas import OwnerReference


class TranslationRecordMixin:
    """One translated value of one attribute, in one locale, for one owner.

    The owner is referenced polymorphically by ``(translatable_type,
    translatable_id)`` so a single table serves every owning model.
    """

    type_tag: ClassVar[str]

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    translatable_type: Mapped[str] = mapped_column(String(255), nullable=False)
    translatable_id: Mapped[int] = mapped_column(Integer, nullable=False)
    key: Mapped[str] = mapped_column(String(255), nullable=False)
    locale: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    @declared_attr.directive
    def __table_args__(cls):
        table = cls.__tablename__
        return (
            UniqueConstraint(
                "translatable_type",
                "translatable_id",
                "key",
                "locale",
                name=f"uq_{table}_owner_key_locale",
            ),
            Index(f"ix_{table}_translatable", "translatable_type", "translatable_id"),
            Index(f"ix_{table}_key_locale", "key", "locale"),
        )

    @property
    def owner_reference(self) -> OwnerReference:
        return OwnerReference(
            type_tag=self.translatable_type, identifier=self.translatable_id
        )

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__}("
            f"id={self.id}, "
            f"translatable_type={self.translatable_type!r}, "
            f"translatable_id={self.translatable_id}, "
            f"key={self.key!r}, "
            f"locale={self.locale!r}"
            f")>"
        )


class StringTranslation(TranslationRecordMixin, Base):
    __tablename__ = "string_translations"
    type_tag = "string"

    value: Mapped[str | None] = mapped_column(String(255), nullable=True)


class TextTranslation(TranslationRecordMixin, Base):
    __tablename__ = "text_translations"
    type_tag = "text"

    value: Mapped[str | None] = mapped_column(Text, nullable=True)
