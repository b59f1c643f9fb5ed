from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Mapping, Sequence

from polytrans.config import settings
from polytrans.locales import normalize_locale

FallbacksGenerator = Callable[[str], Sequence[str]]


class Fallbacks:
    """Ordered candidate locales per locale, ending with the default locale.

    Chains come from configuration; the backend only ever consumes the
    resulting lists.
    """

    def __init__(
        self,
        chains: Mapping[str, Iterable[str]] | None = None,
        default_locale: str | None = None,
    ) -> None:
        self.default_locale = default_locale
        self._chains: Dict[str, List[str]] = {
            normalize_locale(locale): [normalize_locale(item) for item in chain]
            for locale, chain in (chains or {}).items()
        }

    def __call__(self, locale: object) -> List[str]:
        code = normalize_locale(locale)
        ordered: List[str] = []
        candidates = [code, *self._chains.get(code, [])]
        if self.default_locale:
            candidates.append(self.default_locale)
        for candidate in candidates:
            if candidate and candidate not in ordered:
                ordered.append(candidate)
        return ordered


def build_fallbacks(chains: Mapping[str, Iterable[str]] | None = None) -> Fallbacks:
    if chains is None:
        chains = settings.fallbacks
    return Fallbacks(chains, default_locale=settings.default_locale)
