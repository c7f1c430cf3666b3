"""Contexto de aplicación inyectado en comandos y pruebas.

Application context injected into commands and tests; it replaces any
module-level repository singleton.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from .categories import CategoryRegistry
from .config import EscrutinioSettings, load_category_rules
from .core.adapters import InMemoryStorageAdapter, JsonFileStorageAdapter, SqliteStorageAdapter, StorageAdapter
from .core.navigation import CategoryNavigator
from .core.reference import InMemoryReferenceData, ReferenceData
from .core.repository import ActaRepository
from .core.state_machine import ActaStateMachine, Clock, utc_now

logger = logging.getLogger(__name__)


def build_adapter(settings: EscrutinioSettings) -> StorageAdapter:
    """Crea el adaptador de almacenamiento configurado.

    English: Create the configured storage adapter.
    """
    if settings.STORAGE_BACKEND == "memory":
        return InMemoryStorageAdapter()
    if settings.STORAGE_BACKEND == "sqlite":
        settings.STORAGE_PATH.mkdir(parents=True, exist_ok=True)
        return SqliteStorageAdapter(str(settings.STORAGE_PATH / "escrutinio.db"))
    return JsonFileStorageAdapter(settings.STORAGE_PATH / "storage")


@dataclass
class AppContext:
    """Dependencias compartidas de una sesión de operador.

    English: Shared dependencies for one operator session.
    """

    settings: EscrutinioSettings
    repository: ActaRepository
    reference: ReferenceData
    categories: CategoryRegistry
    clock: Clock = field(default=utc_now)

    @property
    def navigator(self) -> CategoryNavigator:
        return CategoryNavigator(self.repository, self.reference, clock=self.clock)

    async def open_acta(self, category: str, index: Optional[int] = None) -> ActaStateMachine:
        return await ActaStateMachine.open(self.repository, self.reference, category, index, clock=self.clock)

    def close(self) -> None:
        adapter = self.repository.adapter
        if isinstance(adapter, SqliteStorageAdapter):
            adapter.close()


def build_context(
    settings: EscrutinioSettings,
    reference: Optional[ReferenceData] = None,
    *,
    adapter: Optional[StorageAdapter] = None,
    clock: Optional[Clock] = None,
) -> AppContext:
    categories = load_category_rules(settings.CATEGORY_RULES_PATH)
    repository = ActaRepository(
        adapter or build_adapter(settings),
        categories=categories,
        default_category=settings.DEFAULT_CATEGORY,
    )
    logger.debug(
        "context_built backend=%s storage_path=%s",
        settings.STORAGE_BACKEND,
        settings.STORAGE_PATH,
    )
    return AppContext(
        settings=settings,
        repository=repository,
        reference=reference or InMemoryReferenceData(),
        categories=categories,
        clock=clock or utc_now,
    )
