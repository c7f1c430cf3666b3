"""Navegación entre categorías y actas de una misma categoría.

Navigation across categories and across the actas of one category.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from escrutinio.schemas import Acta

from .models import ValidationResult
from .reference import ReferenceData
from .repository import ActaRepository
from .state_machine import ActaStateMachine, Clock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActaSummary:
    """Resumen de un acta para listados.

    English: Acta summary for listings.
    """

    index: int
    mesa_number: int
    acta_number: str
    total_electores: int
    entries: int
    is_mesa_data_saved: bool
    is_form_finalized: bool
    is_active: bool

    @classmethod
    def from_acta(cls, index: int, acta: Acta, active_index: int) -> "ActaSummary":
        return cls(
            index=index,
            mesa_number=acta.mesa_number,
            acta_number=acta.acta_number,
            total_electores=acta.total_electores,
            entries=len(acta.vote_entries),
            is_mesa_data_saved=acta.is_mesa_data_saved,
            is_form_finalized=acta.is_form_finalized,
            is_active=index == active_index,
        )


class CategoryNavigator:
    """Mantiene la categoría activa y el acta activa de cada categoría.

    English: Keeps the active category and each category's active acta.
    """

    def __init__(
        self,
        repository: ActaRepository,
        reference: ReferenceData,
        *,
        clock: Optional[Clock] = None,
    ) -> None:
        self.repository = repository
        self.reference = reference
        self.clock = clock

    async def active_category(self) -> str:
        return await self.repository.get_active_category()

    async def set_active_category(self, category: str) -> ValidationResult:
        """Activa una categoría; la primera vez se crea con un acta vacía.

        English: Activate a category; on first touch it is created with one
        empty acta carrying the default vote limits.
        """
        if category not in self.repository.categories:
            logger.info("category_rejected category=%s", category)
            return ValidationResult.fail("Categoría electoral desconocida")
        all_data = await self.repository.get_all_category_data()
        if category not in all_data or not all_data[category].actas:
            await self.repository.save_category_data(category, self.repository.default_category_data(category))
            await self.repository.save_active_acta_index(category, 0)
        await self.repository.save_active_category(category)
        logger.info("category_activated category=%s", category)
        return ValidationResult.ok()

    async def list_actas(self, category: Optional[str] = None) -> List[ActaSummary]:
        category = category or await self.active_category()
        actas = await self.repository.get_all_actas(category)
        active_index = await self.repository.get_active_acta_index(category)
        return [ActaSummary.from_acta(index, acta, active_index) for index, acta in enumerate(actas)]

    async def create_new_acta(self, category: Optional[str] = None) -> ValidationResult:
        """Inicia un nuevo recuento en la categoría.

        Si el acta actual está vacía no se crea otra. Si ya existe un acta
        vacía en la categoría se activa esa en lugar de agregar una nueva.

        English:
            Start a new count in the category. Refused while the current acta
            is empty; an existing empty acta is reused instead of appending.
        """
        category = category or await self.active_category()
        current = await self.repository.get_active_acta(category)
        if current.is_empty:
            return ValidationResult.fail("La acta actual ya está vacía")
        actas = await self.repository.get_all_actas(category)
        for index, acta in enumerate(actas):
            if acta.is_empty:
                await self.repository.save_active_acta_index(category, index)
                logger.info("acta_switched category=%s index=%s reused_empty=true", category, index)
                return ValidationResult(True, "Nuevo recuento")
        await self.repository.create_new_acta(category)
        return ValidationResult(True, "Nuevo recuento")

    async def switch_to_acta(self, index: int, category: Optional[str] = None) -> ValidationResult:
        category = category or await self.active_category()
        actas = await self.repository.get_all_actas(category)
        if index < 0 or index >= len(actas):
            return ValidationResult.fail(f"No existe el acta {index} en {category}")
        await self.repository.save_active_acta_index(category, index)
        logger.info("acta_switched category=%s index=%s", category, index)
        return ValidationResult(True, f"Acta cambiada: {actas[index].acta_number or 'Sin número'}")

    async def open_active(self, category: Optional[str] = None) -> ActaStateMachine:
        category = category or await self.active_category()
        return await ActaStateMachine.open(self.repository, self.reference, category, clock=self.clock)
