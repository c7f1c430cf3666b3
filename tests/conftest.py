"""Fixtures compartidas: almacenamiento en memoria, catálogo de referencia y contexto.

Shared fixtures: in-memory storage, reference catalog and application context.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

import pytest

from escrutinio.config import load_settings
from escrutinio.context import AppContext, build_context
from escrutinio.core.adapters import InMemoryStorageAdapter
from escrutinio.core.models import MesaInfo, PoliticalOrganization
from escrutinio.core.reference import CircunscripcionRecord, InMemoryReferenceData
from escrutinio.core.repository import ActaRepository
from escrutinio.core.state_machine import ActaStateMachine


class FakeClock:
    """Reloj controlado para las pruebas.

    English: Controlled clock for tests.
    """

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2026, 4, 12, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def reference() -> InMemoryReferenceData:
    return InMemoryReferenceData.from_records(
        mesas=[
            MesaInfo(123456, "LIMA", "LIMA", "MIRAFLORES", "LIMA", 300),
            MesaInfo(654321, "CUSCO", "CUSCO", "WANCHAQ", "CUSCO", 3),
        ],
        circunscripciones=[
            CircunscripcionRecord("UNICO NACIONAL", category="presidencial"),
            CircunscripcionRecord("UNICO NACIONAL", category="senadoresNacional"),
            CircunscripcionRecord("PERUANOS RESIDENTES EN EL PERU", category="parlamentoAndino"),
            CircunscripcionRecord("LIMA", departamento="LIMA"),
            CircunscripcionRecord("CUSCO", departamento="CUSCO"),
        ],
        vote_limits={("diputados", "LIMA"): 33, ("diputados", "CUSCO"): 5},
        organizations=[
            PoliticalOrganization("P1", "PARTIDO UNO", 1),
            PoliticalOrganization("P2", "PARTIDO DOS", 2),
            PoliticalOrganization("BLANCO", "VOTOS EN BLANCO"),
            PoliticalOrganization("NULO", "VOTOS NULOS"),
        ],
        jees={"JEE LIMA CENTRO": "01", "JEE CUSCO": "02"},
    )


@pytest.fixture
def adapter() -> InMemoryStorageAdapter:
    return InMemoryStorageAdapter()


@pytest.fixture
def repository(adapter: InMemoryStorageAdapter) -> ActaRepository:
    return ActaRepository(adapter)


@pytest.fixture
def context(adapter, reference, clock, tmp_path) -> AppContext:
    settings = load_settings(STORAGE_BACKEND="memory", STORAGE_PATH=tmp_path)
    return build_context(settings, reference, adapter=adapter, clock=clock)


SessionStarter = Callable[..., Awaitable[ActaStateMachine]]


@pytest.fixture
def start_session(context: AppContext) -> SessionStarter:
    """Carga, asigna JEE y registra una mesa con P1 y P2 habilitados.

    English: Load, assign JEE and commit a mesa with P1 and P2 enabled.
    """

    async def _start(category: str, mesa_number: int = 654321, jee: str = "JEE CUSCO", index=None):
        await context.repository.save_selected_organizations(["P1", "P2"])
        machine = await context.open_acta(category, index)
        loaded = await machine.load_mesa_info(mesa_number)
        assert loaded.is_valid, loaded.message
        await machine.select_jee(jee)
        committed = await machine.commit_mesa_data()
        assert committed.is_valid, committed.message
        return machine

    return _start
