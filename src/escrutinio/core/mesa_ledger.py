"""Índice de actas por número de mesa, independiente de la categoría.

Index of actas keyed by mesa number, independent of category. Loaded once
from the repository and queried without rescanning every category.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from escrutinio.schemas import Acta

from .repository import ActaRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MesaRecord:
    """Acta de una mesa con su ubicación en el repositorio.

    English: An acta of one mesa with its position in the repository.
    """

    category: str
    index: int
    acta: Acta

    def matches(self, exclude_category: Optional[str], exclude_index: Optional[int]) -> bool:
        """Falso solo para el acta excluida; requiere categoría e índice.

        English: False only for the excluded acta; both category and index
        must be given for the exclusion to apply.
        """
        if exclude_category is None or exclude_index is None:
            return True
        return (self.category, self.index) != (exclude_category, exclude_index)


class MesaLedger:
    """Consultas cruzadas por mesa sobre todas las categorías.

    English: Cross-category queries by mesa number.
    """

    def __init__(self, repository: ActaRepository) -> None:
        self.repository = repository
        self._by_mesa: Dict[int, List[MesaRecord]] = {}

    async def refresh(self, strict: bool = False) -> "MesaLedger":
        all_data = await self.repository.get_all_category_data(strict=strict)
        ordered = [key for key in self.repository.categories.keys() if key in all_data]
        ordered += [key for key in all_data if key not in ordered]
        index: Dict[int, List[MesaRecord]] = {}
        for category in ordered:
            for position, acta in enumerate(all_data[category].actas):
                if acta.mesa_number > 0:
                    index.setdefault(acta.mesa_number, []).append(MesaRecord(category, position, acta))
        self._by_mesa = index
        logger.debug("mesa_ledger_refreshed mesas=%s", len(index))
        return self

    def records_for(self, mesa_number: int) -> List[MesaRecord]:
        if mesa_number <= 0:
            return []
        return list(self._by_mesa.get(mesa_number, []))

    def _scan(
        self,
        mesa_number: int,
        exclude_category: Optional[str],
        exclude_index: Optional[int],
    ) -> Iterable[MesaRecord]:
        return (
            record
            for record in self.records_for(mesa_number)
            if record.matches(exclude_category, exclude_index)
        )

    def is_mesa_finalized(self, mesa_number: int, category: str, exclude_index: Optional[int] = None) -> bool:
        """``True`` si otra acta de la categoría ya finalizó la mesa.

        English: Whether any acta of ``category`` (except ``exclude_index``)
        already finalized the mesa.
        """
        return any(
            record.acta.is_form_finalized
            for record in self.records_for(mesa_number)
            if record.category == category and record.index != exclude_index
        )

    def count_saved_actas_by_mesa(
        self,
        mesa_number: int,
        exclude_category: Optional[str] = None,
        exclude_index: Optional[int] = None,
    ) -> int:
        return sum(
            1
            for record in self._scan(mesa_number, exclude_category, exclude_index)
            if record.acta.is_mesa_data_saved and not record.acta.is_partial_recount
        )

    def find_tcv_by_mesa(
        self,
        mesa_number: int,
        exclude_category: Optional[str] = None,
        exclude_index: Optional[int] = None,
    ) -> Optional[int]:
        for record in self._scan(mesa_number, exclude_category, exclude_index):
            if record.acta.tcv is not None and not record.acta.is_partial_recount:
                return record.acta.tcv
        return None

    def find_cedulas_excedentes_by_mesa(
        self,
        mesa_number: int,
        exclude_category: Optional[str] = None,
        exclude_index: Optional[int] = None,
    ) -> Optional[int]:
        for record in self._scan(mesa_number, exclude_category, exclude_index):
            if record.acta.is_mesa_data_saved and record.acta.cedulas_excedentes:
                return record.acta.cedulas_excedentes
        return None
