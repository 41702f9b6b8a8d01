"""Closed expense category set shared by the extractor, reconciler and dashboard.

Every consumer imports from here: the function-tool enum sent to the model,
category normalization in the reconciler, and the dashboard colour legend.
"""

from __future__ import annotations

import unicodedata
from typing import Final

FALLBACK_CATEGORY: Final[str] = "Otros"

CATEGORIES: Final[tuple[str, ...]] = (
    "Luz",
    "Agua",
    "Internet",
    "Hipoteca",
    "Alquiler",
    "Teléfono",
    "Servicio Doméstico",
    "Ocio",
    "Restaurantes",
    "Transporte",
    FALLBACK_CATEGORY,
)

CATEGORY_COLORS: Final[dict[str, str]] = {
    "Luz": "#FACC15",
    "Agua": "#38BDF8",
    "Internet": "#818CF8",
    "Hipoteca": "#A16207",
    "Alquiler": "#B91C1C",
    "Teléfono": "#4ADE80",
    "Servicio Doméstico": "#F472B6",
    "Ocio": "#FB923C",
    "Restaurantes": "#E11D48",
    "Transporte": "#64748B",
    "Otros": "#94A3B8",
}


def _fold(value: str) -> str:
    # Strip accents and case so "telefono" and "TELÉFONO" hit the same key.
    decomposed = unicodedata.normalize("NFKD", value)
    bare = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(bare.split()).casefold()


_BY_FOLDED: Final[dict[str, str]] = {_fold(c): c for c in CATEGORIES}


def is_known_category(value: str) -> bool:
    return value in CATEGORY_COLORS


def normalize_category(value: object) -> str:
    """Return the canonical category for ``value``.

    Matching ignores case, accents and repeated whitespace. Anything that does
    not map onto the closed set falls back to ``"Otros"``.
    """

    if not isinstance(value, str):
        return FALLBACK_CATEGORY
    return _BY_FOLDED.get(_fold(value), FALLBACK_CATEGORY)


def category_color(category: str) -> str:
    return CATEGORY_COLORS.get(category, CATEGORY_COLORS[FALLBACK_CATEGORY])
