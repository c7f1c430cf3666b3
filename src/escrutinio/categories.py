"""Catálogo de categorías electorales y reglas de voto preferencial.

Electoral category catalog and preferential vote rules.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, List, Mapping, Optional

from .schemas import VoteLimits


@dataclass(frozen=True)
class ElectoralCategory:
    """Categoría electoral con su configuración preferencial.

    Attributes:
        key (str): Clave interna (``diputados``).
        category_id (str): Letra usada en el número de acta.
        label (str): Nombre para reportes.
        has_preferential1 (bool): Habilita el primer voto preferencial.
        has_preferential2 (bool): Habilita el segundo voto preferencial.
        default_limit (int): Tope usado cuando la referencia no trae uno.
        is_national (bool): Circunscripción única fijada por la categoría.

    English:
        Election category with its preferential configuration.
    """

    key: str
    category_id: str
    label: str
    has_preferential1: bool = False
    has_preferential2: bool = False
    default_limit: int = 0
    is_national: bool = False

    @property
    def has_preferential_votes(self) -> bool:
        return self.has_preferential1 or self.has_preferential2


ELECTORAL_CATEGORIES: List[ElectoralCategory] = [
    ElectoralCategory("presidencial", "A", "Presidencial", is_national=True),
    ElectoralCategory(
        "senadoresNacional",
        "B",
        "Senadores D. Único",
        has_preferential1=True,
        has_preferential2=True,
        default_limit=30,
        is_national=True,
    ),
    ElectoralCategory(
        "senadoresRegional",
        "C",
        "Senadores D. Múltiple",
        has_preferential1=True,
        default_limit=2,
    ),
    ElectoralCategory(
        "diputados",
        "D",
        "Diputados",
        has_preferential1=True,
        has_preferential2=True,
        default_limit=4,
    ),
    ElectoralCategory(
        "parlamentoAndino",
        "E",
        "Parlamento Andino",
        has_preferential1=True,
        has_preferential2=True,
        default_limit=16,
        is_national=True,
    ),
]

DEFAULT_CATEGORY = "presidencial"


class CategoryRegistry:
    """Registro ordenado de categorías, ajustable desde configuración.

    English: Ordered category registry, tunable from configuration.
    """

    def __init__(self, categories: Optional[List[ElectoralCategory]] = None) -> None:
        self._categories: Dict[str, ElectoralCategory] = {
            category.key: category for category in (categories or ELECTORAL_CATEGORIES)
        }

    def __contains__(self, key: object) -> bool:
        return key in self._categories

    def __iter__(self):
        return iter(self._categories.values())

    def keys(self) -> List[str]:
        return list(self._categories)

    def get(self, key: str) -> ElectoralCategory:
        try:
            return self._categories[key]
        except KeyError:
            raise KeyError(f"Unknown electoral category: {key}") from None

    def with_overrides(self, overrides: Mapping[str, Mapping[str, object]]) -> "CategoryRegistry":
        """Devuelve un registro nuevo aplicando overrides validados.

        English: Return a new registry with validated overrides applied.
        """
        updated = []
        for category in self:
            fields = overrides.get(category.key)
            updated.append(replace(category, **fields) if fields else category)
        return CategoryRegistry(updated)

    def vote_limits(self, key: str, reference_limit: Optional[int] = None) -> VoteLimits:
        """Topes preferenciales para una categoría y circunscripción.

        Un tope de referencia positivo gana sobre el de la categoría; los
        slots no habilitados quedan siempre en 0.

        English:
            Preferential caps for a category and circunscripción. A positive
            reference cap wins over the category default; disabled slots are
            always 0.
        """
        category = self.get(key)
        limit = reference_limit if reference_limit and reference_limit > 0 else category.default_limit
        return VoteLimits(
            preferential1=limit if category.has_preferential1 else 0,
            preferential2=limit if category.has_preferential2 else 0,
        )
