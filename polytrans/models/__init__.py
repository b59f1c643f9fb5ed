from polytrans.models.base import Base, metadata
from polytrans.models.schemas import OwnerReference, TranslationModel
from polytrans.models.translation import (
    StringTranslation,
    TextTranslation,
    TranslationRecordMixin,
)

__all__ = [
    "Base",
    "metadata",
    "OwnerReference",
    "TranslationModel",
    "StringTranslation",
    "TextTranslation",
    "TranslationRecordMixin",
]
