"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/core/state_machine.py`.
Máquina de estados del acta: carga de mesa, registro de datos de mesa,
ingreso de cédulas, pausa, finalización y reinicio.

Cada transición que persiste trabaja sobre una copia del acta, marca el
commit como PENDING, escribe en el repositorio y solo entonces reemplaza el
acta en memoria (CONFIRMED). Si la escritura falla, el acta previa se
conserva, el estado queda FAILED y el error se propaga.

Componentes detectados:
  - ActaStateMachine

======================== ENGLISH ========================
File: `src/escrutinio/core/state_machine.py`.
Acta state machine: mesa loading, mesa data commit, ballot entry, pause,
finalization and reset.

Every persisting transition works on a copy of the acta, marks the commit
PENDING, writes through the repository and only then swaps the in-memory
acta (CONFIRMED). On a failed write the previous acta is kept, the status
becomes FAILED and the error propagates.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Callable, List, Optional

import structlog

from escrutinio.categories import ElectoralCategory
from escrutinio.logging import bind_context
from escrutinio.schemas import SPECIAL_PARTIES, Acta, VoteEntry

from . import validator
from .adapters import StorageError
from .mesa_ledger import MesaLedger
from .models import ActaState, CommitStatus, TransitionResult, VoteEntryDraft
from .reference import ReferenceData
from .report import session_seconds
from .repository import ActaRepository

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_mesa(mesa_number: int) -> str:
    return f"{mesa_number:06d}"


def build_acta_number(mesa_number: int, jee_id: str, category_id: str) -> str:
    return f"{format_mesa(mesa_number)}-{jee_id}-{category_id}"


class ActaStateMachine:
    """Orquesta las transiciones de un acta dentro de una categoría.

    Attributes:
        category (str): Categoría electoral del acta.
        index (int): Posición del acta dentro de la categoría.
        acta (Acta): Último estado confirmado.
        commit_status (CommitStatus): Resultado de la última escritura.

    English:
        Drives the transitions of one acta within a category.
    """

    def __init__(
        self,
        repository: ActaRepository,
        reference: ReferenceData,
        category: str,
        index: int,
        acta: Acta,
        *,
        clock: Optional[Clock] = None,
    ) -> None:
        self.repository = repository
        self.reference = reference
        self.category = category
        self.index = index
        self.acta = acta
        self.clock = clock or utc_now
        self.commit_status = CommitStatus.NONE
        self._lock = asyncio.Lock()

    @classmethod
    async def open(
        cls,
        repository: ActaRepository,
        reference: ReferenceData,
        category: str,
        index: Optional[int] = None,
        *,
        clock: Optional[Clock] = None,
    ) -> "ActaStateMachine":
        """Abre el acta indicada (o la activa) de la categoría.

        English: Open the given (or active) acta of the category.
        """
        if index is None:
            index = await repository.get_active_acta_index(category)
        acta = await repository.get_acta(category, index)
        if acta is None:
            acta = repository.default_acta(category)
        return cls(repository, reference, category, index, acta, clock=clock)

    @property
    def definition(self) -> ElectoralCategory:
        return self.repository.categories.get(self.category)

    @property
    def state(self) -> ActaState:
        acta = self.acta
        if acta.is_form_finalized:
            return ActaState.FINALIZED
        if acta.is_mesa_data_saved:
            return ActaState.PAUSED if acta.is_paused else ActaState.SESSION_ACTIVE
        if acta.mesa_number > 0:
            return ActaState.MESA_LOADED
        return ActaState.EMPTY

    # Helpers

    def _log(self, acta: Optional[Acta] = None) -> structlog.BoundLogger:
        acta = acta if acta is not None else self.acta
        return bind_context(logger, category=self.category, mesa_number=acta.mesa_number, acta_index=self.index)

    def _result(self, message: str = "") -> TransitionResult:
        return TransitionResult(True, message, self.state, self.commit_status)

    def _reject(self, message: str) -> TransitionResult:
        self._log().info("acta_transition_rejected", state=self.state.value, reason=message)
        return TransitionResult(False, message, self.state, self.commit_status)

    def _stage(self, working: Acta, message: str = "") -> TransitionResult:
        self.acta = working
        return self._result(message)

    async def _commit(self, working: Acta, event: str) -> TransitionResult:
        self.commit_status = CommitStatus.PENDING
        try:
            index = await self.repository.save_acta(self.category, self.index, working)
        except StorageError:
            self.commit_status = CommitStatus.FAILED
            self._log(working).error("acta_commit_failed", transition=event)
            raise
        self.acta = working
        self.index = index
        self.commit_status = CommitStatus.CONFIRMED
        self._log().info(event, entries=len(working.vote_entries))
        return self._result()

    async def _ledger(self) -> MesaLedger:
        return await MesaLedger(self.repository).refresh(strict=True)

    def _already_finalized_message(self, mesa_number: int) -> str:
        return f"Mesa N° {format_mesa(mesa_number)} ya ha sido recontada para {self.definition.label}"

    def _derive_acta_number(self, acta: Acta) -> str:
        if acta.mesa_number <= 0 or not acta.selected_location.jee:
            return ""
        jee_id = self.reference.jee_id(acta.selected_location.jee)
        if not jee_id:
            return ""
        return build_acta_number(acta.mesa_number, jee_id, self.definition.category_id)

    def _resolve_circunscripcion(self, mesa_circunscripcion: str) -> str:
        if self.definition.is_national:
            options = self.reference.circunscripcion_options(self.category)
            return options[0] if len(options) == 1 else ""
        return mesa_circunscripcion

    def _normalize(self, draft: VoteEntryDraft) -> VoteEntryDraft:
        definition = self.definition
        pref1 = draft.preferential_vote1 if definition.has_preferential1 else None
        pref2 = draft.preferential_vote2 if definition.has_preferential2 else None
        return VoteEntryDraft(
            party=draft.party.strip(),
            preferential_vote1=pref1 or None,
            preferential_vote2=pref2 or None,
        )

    def _entry_guard(self) -> Optional[str]:
        state = self.state
        if state is ActaState.FINALIZED:
            return "El acta ya fue finalizada"
        if state is ActaState.PAUSED:
            return "El conteo está en pausa"
        if state is not ActaState.SESSION_ACTIVE:
            return "Debe guardar los datos de la mesa antes de registrar cédulas"
        return None

    async def organization_keys(self) -> List[str]:
        """Claves habilitadas para el acta en su circunscripción.

        English: Organization keys enabled for the acta's circunscripción.
        """
        return await self.repository.resolve_organization_keys(
            self.acta.selected_location.circunscripcion_electoral,
            self.category,
            self.acta.is_partial_recount,
        )

    # Staging

    async def load_mesa_info(self, mesa_number: int) -> TransitionResult:
        """Carga la mesa desde los datos de referencia, sin persistir.

        Completa ubicación, electores hábiles, circunscripción, topes
        preferenciales y, si la mesa ya fue contada en otra categoría, el TCV
        y las cédulas excedentes registradas.

        English:
            Load the mesa from reference data without persisting. Fills
            location, eligible voters, circunscripción, vote limits and, for a
            mesa already counted elsewhere, the recorded TCV and surplus.
        """
        async with self._lock:
            if self.state not in (ActaState.EMPTY, ActaState.MESA_LOADED):
                return self._reject("Los datos de la mesa ya fueron guardados")
            number_check = validator.validate_mesa_number(mesa_number)
            if not number_check.is_valid:
                return self._reject(number_check.message)

            ledger = await self._ledger()
            if ledger.is_mesa_finalized(mesa_number, self.category, exclude_index=self.index):
                return self._reject(self._already_finalized_message(mesa_number))

            info = self.reference.get_mesa_info(mesa_number)
            if info is None:
                return self._reject(
                    f"Mesa N° {format_mesa(mesa_number)} no encontrada en los datos electorales"
                )

            circunscripcion = self._resolve_circunscripcion(info.circunscripcion_electoral)
            working = self.acta.model_copy(deep=True)
            working.mesa_number = mesa_number
            working.total_electores = info.total_electores
            working.are_mesa_fields_locked = True
            working.selected_location = working.selected_location.model_copy(
                update={
                    "departamento": info.departamento,
                    "provincia": info.provincia,
                    "distrito": info.distrito,
                    "circunscripcion_electoral": circunscripcion,
                }
            )
            working.vote_limits = self.repository.categories.vote_limits(
                self.category, self.reference.vote_limit(self.category, circunscripcion)
            )

            existing_tcv = ledger.find_tcv_by_mesa(mesa_number, self.category, self.index)
            existing_excedentes = ledger.find_cedulas_excedentes_by_mesa(mesa_number, self.category, self.index)
            working.tcv = existing_tcv
            working.cedulas_excedentes = existing_excedentes or 0
            working.acta_number = self._derive_acta_number(working)

            message = ""
            if existing_tcv is not None or existing_excedentes is not None:
                parts = []
                if existing_excedentes is not None:
                    parts.append(f"Cédulas Excedentes: {existing_excedentes}")
                if existing_tcv is not None:
                    parts.append(f"TCV: {existing_tcv}")
                message = "Auto-completado - " + ", ".join(parts)
            self._log(working).info("mesa_loaded", circunscripcion=circunscripcion, inherited_tcv=existing_tcv)
            return self._stage(working, message)

    async def select_jee(self, jee: str) -> TransitionResult:
        async with self._lock:
            if self.acta.is_mesa_data_saved:
                return self._reject("Los datos de la mesa ya fueron guardados")
            working = self.acta.model_copy(deep=True)
            working.selected_location = working.selected_location.model_copy(update={"jee": jee.strip()})
            working.acta_number = self._derive_acta_number(working)
            return self._stage(working)

    async def update_location(
        self,
        *,
        departamento: Optional[str] = None,
        provincia: Optional[str] = None,
        distrito: Optional[str] = None,
        circunscripcion_electoral: Optional[str] = None,
    ) -> TransitionResult:
        """Edita la ubicación antes del registro de la mesa.

        Los campos geográficos quedan bloqueados cuando la mesa se completó
        desde la referencia; la circunscripción sigue editable hasta el
        registro y debe pertenecer a las opciones de la categoría.

        English:
            Edit the location before commit. Geographic fields are locked once
            auto-filled; the circunscripción stays editable until commit and
            must be one of the category's options.
        """
        async with self._lock:
            if self.acta.is_mesa_data_saved:
                return self._reject("Los datos de la mesa ya fueron guardados")
            geographic = {
                "departamento": departamento,
                "provincia": provincia,
                "distrito": distrito,
            }
            changes = {field: value.strip() for field, value in geographic.items() if value is not None}
            if changes and self.acta.are_mesa_fields_locked:
                return self._reject("Los datos de ubicación están bloqueados para esta mesa")
            if circunscripcion_electoral is not None:
                circunscripcion = circunscripcion_electoral.strip()
                options = self.reference.circunscripcion_options(self.category)
                if options and circunscripcion not in options:
                    return self._reject(
                        f"Circunscripción Electoral no válida para {self.definition.label}: {circunscripcion}"
                    )
                changes["circunscripcion_electoral"] = circunscripcion
            working = self.acta.model_copy(deep=True)
            working.selected_location = working.selected_location.model_copy(update=changes)
            if "circunscripcion_electoral" in changes:
                working.vote_limits = self.repository.categories.vote_limits(
                    self.category,
                    self.reference.vote_limit(self.category, changes["circunscripcion_electoral"]),
                )
            return self._stage(working)

    # Persisting transitions

    async def commit_mesa_data(self) -> TransitionResult:
        """Registra los datos de mesa e inicia la sesión de conteo.

        English: Commit mesa data and start the counting session.
        """
        async with self._lock:
            if self.state is not ActaState.MESA_LOADED:
                return self._reject("Debe cargar una mesa antes de guardar sus datos")
            acta = self.acta
            circunscripcion = acta.selected_location.circunscripcion_electoral

            partial = False
            if circunscripcion and self.definition.has_preferential_votes:
                partial = await self.repository.get_is_partial_recount(circunscripcion)

            keys = await self.repository.resolve_organization_keys(circunscripcion, self.category, partial)
            regular_keys = [key for key in keys if key not in SPECIAL_PARTIES]
            check = validator.validate_mesa_data(acta, regular_keys, self.reference.organizations())
            if not check.is_valid:
                return self._reject(check.message)

            ledger = await self._ledger()
            if ledger.is_mesa_finalized(acta.mesa_number, self.category, exclude_index=self.index):
                return self._reject(self._already_finalized_message(acta.mesa_number))

            previous = ledger.count_saved_actas_by_mesa(acta.mesa_number, self.category, self.index)
            working = acta.model_copy(deep=True)
            working.counter_mesa = previous if partial else previous + 1
            working.is_partial_recount = partial
            if partial:
                working.tcv = None
                working.tcv_source = None
            elif working.counter_mesa == 1:
                working.tcv = len(working.vote_entries)
                working.tcv_source = "derived"
            else:
                inherited = ledger.find_tcv_by_mesa(acta.mesa_number, self.category, self.index)
                if inherited is None:
                    self._log().warning("mesa_tcv_missing", counter=working.counter_mesa)
                    working.tcv = len(working.vote_entries)
                    working.tcv_source = "derived"
                else:
                    working.tcv = inherited
                    working.tcv_source = "inherited"
            working.start_time = self.clock()
            working.is_mesa_data_saved = True
            working.are_mesa_fields_locked = True
            return await self._commit(working, "mesa_data_committed")

    async def add_vote_entry(self, draft: VoteEntryDraft) -> TransitionResult:
        async with self._lock:
            guard = self._entry_guard()
            if guard:
                return self._reject(guard)
            capacity = validator.can_add_entry(len(self.acta.vote_entries), self.acta.total_electores)
            if not capacity.is_valid:
                return self._reject(capacity.message)
            entry = self._normalize(draft)
            check = validator.validate_entry(entry, self.acta.vote_limits, self.definition)
            if not check.is_valid:
                return self._reject(check.message)
            if entry.party not in await self.organization_keys():
                return self._reject(f"La organización política {entry.party} no está habilitada")

            working = self.acta.model_copy(deep=True)
            working.vote_entries.append(
                VoteEntry(
                    table_number=working.next_table_number,
                    party=entry.party,
                    preferential_vote1=entry.preferential_vote1,
                    preferential_vote2=entry.preferential_vote2,
                )
            )
            if working.tcv_source == "derived":
                working.tcv = len(working.vote_entries)
            return await self._commit(working, "vote_entry_added")

    async def edit_last_entry(self, draft: VoteEntryDraft) -> TransitionResult:
        """Reemplaza la última cédula conservando su número de orden.

        English: Replace the last ballot, keeping its table number.
        """
        async with self._lock:
            guard = self._entry_guard()
            if guard:
                return self._reject(guard)
            if not self.acta.vote_entries:
                return self._reject("No hay cédulas para editar")
            entry = self._normalize(draft)
            check = validator.validate_entry(entry, self.acta.vote_limits, self.definition)
            if not check.is_valid:
                return self._reject(check.message)
            if entry.party not in await self.organization_keys():
                return self._reject(f"La organización política {entry.party} no está habilitada")

            working = self.acta.model_copy(deep=True)
            last = working.vote_entries[-1]
            working.vote_entries[-1] = VoteEntry(
                table_number=last.table_number,
                party=entry.party,
                preferential_vote1=entry.preferential_vote1,
                preferential_vote2=entry.preferential_vote2,
            )
            return await self._commit(working, "vote_entry_edited")

    async def set_cedulas_excedentes(self, value: int) -> TransitionResult:
        async with self._lock:
            if not self.acta.is_mesa_data_saved:
                return self._reject("Debe guardar los datos de la mesa antes de registrar cédulas")
            check = validator.can_set_cedulas_excedentes(self.acta, value)
            if not check.is_valid:
                return self._reject(check.message)
            working = self.acta.model_copy(deep=True)
            working.cedulas_excedentes = value
            return await self._commit(working, "cedulas_excedentes_set")

    async def mark_conformidad_downloaded(self) -> TransitionResult:
        async with self._lock:
            if self.state is not ActaState.FINALIZED:
                return self._reject("El acta debe estar finalizada para descargar la conformidad")
            working = self.acta.model_copy(deep=True)
            working.is_conformidad_downloaded = True
            return await self._commit(working, "conformidad_downloaded")

    async def pause(self) -> TransitionResult:
        async with self._lock:
            if self.state is not ActaState.SESSION_ACTIVE:
                return self._reject("Solo se puede pausar un conteo en curso")
            working = self.acta.model_copy(deep=True)
            working.is_paused = True
            working.last_pause_time = self.clock()
            return await self._commit(working, "acta_paused")

    async def resume(self) -> TransitionResult:
        async with self._lock:
            if self.state is not ActaState.PAUSED:
                return self._reject("El conteo no está en pausa")
            now = self.clock()
            working = self.acta.model_copy(deep=True)
            if working.last_pause_time is not None:
                paused_ms = int((now - working.last_pause_time).total_seconds() * 1000)
                working.paused_duration_ms += max(paused_ms, 0)
            working.is_paused = False
            working.last_pause_time = None
            return await self._commit(working, "acta_resumed")

    def elapsed_seconds(self, now: Optional[datetime] = None) -> float:
        """Segundos de conteo efectivo, descontando pausas.

        English: Effective counting seconds, excluding pauses.
        """
        return session_seconds(self.acta, now or self.clock())

    async def finalize(self) -> TransitionResult:
        async with self._lock:
            state = self.state
            if state is ActaState.PAUSED:
                return self._reject("Debe reanudar el conteo antes de finalizar")
            if state is ActaState.FINALIZED:
                return self._reject("El acta ya fue finalizada")
            check = validator.can_finalize(self.acta)
            if not check.is_valid:
                return self._reject(check.message)

            ledger = await self._ledger()
            if ledger.is_mesa_finalized(self.acta.mesa_number, self.category, exclude_index=self.index):
                return self._reject(self._already_finalized_message(self.acta.mesa_number))

            working = self.acta.model_copy(deep=True)
            if working.tcv_source == "derived":
                working.tcv = len(working.vote_entries)
            working.end_time = self.clock()
            working.is_form_finalized = True
            result = await self._commit(working, "acta_finalized")

            if working.is_partial_recount:
                circunscripcion = working.selected_location.circunscripcion_electoral
                await self.repository.save_is_partial_recount(circunscripcion, False)
                self._log().info("partial_recount_disabled", circunscripcion=circunscripcion)
            return result

    async def reinitialize(self) -> TransitionResult:
        """Restablece el acta a sus valores por defecto.

        English: Reset the acta to its defaults. Irreversible.
        """
        async with self._lock:
            working = self.repository.default_acta(self.category)
            return await self._commit(working, "acta_reinitialized")
