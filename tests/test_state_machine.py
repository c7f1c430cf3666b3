"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `tests/test_state_machine.py`.
Pruebas de la máquina de estados del acta: carga y registro de mesa,
ingreso de cédulas, TCV heredado, pausa, finalización, recuento parcial y
commit en dos fases.

======================== ENGLISH ========================
File: `tests/test_state_machine.py`.
Acta state machine tests: mesa load and commit, ballot entry, inherited
TCV, pause, finalization, partial recount and two-phase commit.
"""

import asyncio

import pytest

from escrutinio.config import load_settings
from escrutinio.context import build_context
from escrutinio.core.adapters import InMemoryStorageAdapter, StorageReadError, StorageWriteError
from escrutinio.core.mesa_ledger import MesaLedger
from escrutinio.core.models import ActaState, CommitStatus, VoteEntryDraft
from escrutinio.core.tally import tally
from escrutinio.schemas import Acta


class ToggleAdapter(InMemoryStorageAdapter):
    def __init__(self):
        super().__init__()
        self.fail_writes = False
        self.fail_reads = False

    async def get(self, key):
        if self.fail_reads:
            raise StorageReadError(f"cannot read {key}")
        return await super().get(key)

    async def set(self, key, value):
        if self.fail_writes:
            raise StorageWriteError(f"cannot write {key}")
        await super().set(key, value)


def test_load_mesa_populates_location_and_limits(context):
    async def scenario():
        machine = await context.open_acta("diputados")
        result = await machine.load_mesa_info(654321)
        await machine.select_jee("JEE CUSCO")
        return machine, result

    machine, result = asyncio.run(scenario())

    assert result.is_valid
    assert result.state is ActaState.MESA_LOADED
    assert result.commit_status is CommitStatus.NONE
    acta = machine.acta
    assert acta.total_electores == 3
    assert acta.are_mesa_fields_locked
    assert acta.selected_location.distrito == "WANCHAQ"
    assert acta.selected_location.circunscripcion_electoral == "CUSCO"
    assert acta.vote_limits.preferential1 == 5
    assert acta.acta_number == "654321-02-D"


def test_load_mesa_does_not_persist(context):
    async def scenario():
        machine = await context.open_acta("diputados")
        await machine.load_mesa_info(654321)
        return await context.repository.get_active_acta("diputados")

    assert asyncio.run(scenario()).is_empty


def test_national_category_uses_category_circunscripcion(context):
    async def scenario():
        machine = await context.open_acta("presidencial")
        await machine.load_mesa_info(654321)
        return machine.acta

    acta = asyncio.run(scenario())

    assert acta.selected_location.circunscripcion_electoral == "UNICO NACIONAL"
    assert acta.vote_limits.preferential1 == 0


@pytest.mark.parametrize(
    ("mesa_number", "message"),
    [
        (111111, "Mesa N° 111111 no encontrada en los datos electorales"),
        (1234567, "El número de mesa debe tener 6 dígitos"),
        (0, "El número de mesa debe tener 6 dígitos"),
    ],
)
def test_load_mesa_rejections_leave_state_unchanged(context, mesa_number, message):
    async def scenario():
        machine = await context.open_acta("diputados")
        return machine, await machine.load_mesa_info(mesa_number)

    machine, result = asyncio.run(scenario())

    assert not result.is_valid
    assert result.message == message
    assert result.state is ActaState.EMPTY
    assert machine.acta.mesa_number == 0


def test_commit_requires_jee(context):
    async def scenario():
        await context.repository.save_selected_organizations(["P1"])
        machine = await context.open_acta("diputados")
        await machine.load_mesa_info(654321)
        return await machine.commit_mesa_data()

    result = asyncio.run(scenario())

    assert not result.is_valid
    assert result.message == "Debe seleccionar un JEE"
    assert result.state is ActaState.MESA_LOADED


def test_commit_requires_enabled_organizations(context):
    async def scenario():
        machine = await context.open_acta("diputados")
        await machine.load_mesa_info(654321)
        await machine.select_jee("JEE CUSCO")
        return await machine.commit_mesa_data()

    result = asyncio.run(scenario())

    assert result.message == "Debe activar al menos una Organización Política en Configuración"


def test_commit_starts_session_as_first_count(context, start_session, clock):
    machine = asyncio.run(start_session("diputados"))

    acta = machine.acta
    assert machine.state is ActaState.SESSION_ACTIVE
    assert machine.commit_status is CommitStatus.CONFIRMED
    assert acta.is_mesa_data_saved
    assert acta.start_time == clock.now
    assert acta.counter_mesa == 1
    assert acta.tcv == 0
    assert acta.tcv_source == "derived"
    stored = asyncio.run(context.repository.get_active_acta("diputados"))
    assert stored == acta


def test_capacity_scenario(start_session, reference):
    async def scenario():
        machine = await start_session("diputados")
        for party in ("P1", "P2", "P1"):
            result = await machine.add_vote_entry(VoteEntryDraft(party))
            assert result.is_valid, result.message
        fourth = await machine.add_vote_entry(VoteEntryDraft("P2"))
        return machine, fourth

    machine, fourth = asyncio.run(scenario())

    assert not fourth.is_valid
    assert fourth.message == "No se pueden agregar más cédulas. Límite alcanzado: 3 electores hábiles"
    assert [entry.table_number for entry in machine.acta.vote_entries] == [1, 2, 3]
    assert machine.acta.tcv == 3
    counts = tally(machine.acta.vote_entries, reference.organizations(), 5, 3).vote_count
    assert counts["P1"] == 2 and counts["P2"] == 1


def test_equal_preferential_votes_rejected(start_session):
    async def scenario():
        machine = await start_session("diputados")
        return machine, await machine.add_vote_entry(VoteEntryDraft("P1", 5, 5))

    machine, result = asyncio.run(scenario())

    assert result.message == "Los votos preferenciales 1 y 2 deben tener valores diferentes"
    assert machine.acta.vote_entries == []


def test_party_not_enabled_is_rejected(start_session):
    async def scenario():
        machine = await start_session("diputados")
        return await machine.add_vote_entry(VoteEntryDraft("P9"))

    assert not asyncio.run(scenario()).is_valid


def test_disabled_preferential_slot_is_dropped(context, start_session):
    async def scenario():
        machine = await start_session("senadoresRegional")
        result = await machine.add_vote_entry(VoteEntryDraft("P1", 2, 1))
        return machine, result

    machine, result = asyncio.run(scenario())

    assert result.is_valid
    entry = machine.acta.vote_entries[0]
    assert entry.preferential_vote1 == 2
    assert entry.preferential_vote2 is None


def test_edit_last_entry_keeps_table_number(start_session):
    async def scenario():
        machine = await start_session("diputados")
        await machine.add_vote_entry(VoteEntryDraft("P1", 1))
        await machine.add_vote_entry(VoteEntryDraft("P2"))
        result = await machine.edit_last_entry(VoteEntryDraft("BLANCO"))
        return machine, result

    machine, result = asyncio.run(scenario())

    assert result.is_valid
    assert [(entry.table_number, entry.party) for entry in machine.acta.vote_entries] == [
        (1, "P1"),
        (2, "BLANCO"),
    ]


def test_inherited_tcv_scenario(context, start_session):
    """Mesa reutilizada: el TCV heredado debe coincidir al finalizar.

    English: Reused mesa: the inherited TCV must match on finalize.
    """

    async def scenario():
        await context.repository.save_acta(
            "presidencial",
            0,
            Acta(mesa_number=123456, is_mesa_data_saved=True, tcv=150, is_form_finalized=True),
        )
        machine = await start_session("diputados", 123456, "JEE LIMA CENTRO")
        assert machine.acta.counter_mesa == 2
        assert machine.acta.tcv == 150
        assert machine.acta.tcv_source == "inherited"
        for _ in range(149):
            added = await machine.add_vote_entry(VoteEntryDraft("P1"))
            assert added.is_valid, added.message
        short = await machine.finalize()
        await machine.add_vote_entry(VoteEntryDraft("P2"))
        done = await machine.finalize()
        return machine, short, done

    machine, short, done = asyncio.run(scenario())

    assert not short.is_valid
    assert "no coincide con el TCV" in short.message
    assert done.is_valid
    assert done.state is ActaState.FINALIZED
    assert machine.acta.tcv == 150


def test_finalize_rejects_empty_acta(start_session):
    async def scenario():
        machine = await start_session("diputados")
        return await machine.finalize()

    result = asyncio.run(scenario())

    assert not result.is_valid
    assert result.message == "Debe registrar al menos un voto antes de finalizar"
    assert result.state is ActaState.SESSION_ACTIVE


def test_finalized_acta_is_immutable(start_session, clock):
    async def scenario():
        machine = await start_session("diputados")
        await machine.add_vote_entry(VoteEntryDraft("P1"))
        clock.advance(120)
        finalized = await machine.finalize()
        added = await machine.add_vote_entry(VoteEntryDraft("P2"))
        edited = await machine.edit_last_entry(VoteEntryDraft("P2"))
        relocated = await machine.update_location(circunscripcion_electoral="LIMA")
        return machine, finalized, added, edited, relocated

    machine, finalized, added, edited, relocated = asyncio.run(scenario())

    assert finalized.is_valid
    assert machine.acta.end_time == clock.now
    assert machine.acta.tcv == 1
    assert not added.is_valid
    assert not edited.is_valid
    assert not relocated.is_valid
    assert [entry.party for entry in machine.acta.vote_entries] == ["P1"]
    assert machine.elapsed_seconds() == 120


def test_finalize_in_one_category_does_not_affect_another(context, start_session):
    async def scenario():
        machine = await start_session("diputados")
        await machine.add_vote_entry(VoteEntryDraft("P1"))
        await machine.finalize()
        ledger = await MesaLedger(context.repository).refresh()
        await context.repository.create_new_acta("diputados")
        second = await context.open_acta("diputados")
        reload = await second.load_mesa_info(654321)
        other = await context.open_acta("senadoresRegional")
        other_load = await other.load_mesa_info(654321)
        return ledger, reload, other_load

    ledger, reload, other_load = asyncio.run(scenario())

    assert ledger.is_mesa_finalized(654321, "diputados")
    assert not ledger.is_mesa_finalized(654321, "senadoresRegional")
    assert not reload.is_valid
    assert reload.message == "Mesa N° 654321 ya ha sido recontada para Diputados"
    assert other_load.is_valid
    assert other_load.message == "Auto-completado - TCV: 1"


def test_pause_blocks_entries_and_tracks_duration(start_session, clock):
    async def scenario():
        machine = await start_session("diputados")
        clock.advance(60)
        paused = await machine.pause()
        blocked = await machine.add_vote_entry(VoteEntryDraft("P1"))
        clock.advance(30)
        resumed = await machine.resume()
        clock.advance(10)
        return machine, paused, blocked, resumed

    machine, paused, blocked, resumed = asyncio.run(scenario())

    assert paused.state is ActaState.PAUSED
    assert blocked.message == "El conteo está en pausa"
    assert resumed.state is ActaState.SESSION_ACTIVE
    assert machine.acta.paused_duration_ms == 30000
    assert machine.elapsed_seconds() == 70


def test_cedulas_excedentes_only_when_table_is_full(start_session):
    async def scenario():
        machine = await start_session("diputados")
        early = await machine.set_cedulas_excedentes(2)
        for party in ("P1", "P1", "P2"):
            await machine.add_vote_entry(VoteEntryDraft(party))
        full = await machine.set_cedulas_excedentes(2)
        return machine, early, full

    machine, early, full = asyncio.run(scenario())

    assert not early.is_valid
    assert full.is_valid
    assert machine.acta.cedulas_excedentes == 2


def test_conformidad_requires_finalized_acta(start_session):
    async def scenario():
        machine = await start_session("diputados")
        early = await machine.mark_conformidad_downloaded()
        await machine.add_vote_entry(VoteEntryDraft("P1"))
        await machine.finalize()
        late = await machine.mark_conformidad_downloaded()
        return machine, early, late

    machine, early, late = asyncio.run(scenario())

    assert not early.is_valid
    assert late.is_valid
    assert machine.acta.is_conformidad_downloaded


def test_partial_recount_session(context, start_session):
    async def scenario():
        await context.repository.save_is_partial_recount("CUSCO", True)
        await context.repository.save_partial_recount_organizations("CUSCO", ["P1"])
        machine = await start_session("diputados")
        rejected = await machine.add_vote_entry(VoteEntryDraft("P2"))
        accepted = await machine.add_vote_entry(VoteEntryDraft("P1", 1, 2))
        finalized = await machine.finalize()
        flag = await context.repository.get_is_partial_recount("CUSCO")
        return machine, rejected, accepted, finalized, flag

    machine, rejected, accepted, finalized, flag = asyncio.run(scenario())

    assert machine.acta.is_partial_recount
    assert machine.acta.counter_mesa == 0
    assert machine.acta.tcv is None
    assert not rejected.is_valid
    assert accepted.is_valid
    assert finalized.is_valid
    assert flag is False


def test_partial_flag_ignored_without_preferential_votes(context, start_session):
    async def scenario():
        await context.repository.save_is_partial_recount("UNICO NACIONAL", True)
        return await start_session("presidencial")

    machine = asyncio.run(scenario())

    assert not machine.acta.is_partial_recount
    assert machine.acta.tcv_source == "derived"


def test_failed_write_keeps_previous_acta(reference, clock, tmp_path):
    adapter = ToggleAdapter()
    context = build_context(
        load_settings(STORAGE_BACKEND="memory", STORAGE_PATH=tmp_path), reference, adapter=adapter, clock=clock
    )

    async def scenario():
        await context.repository.save_selected_organizations(["P1", "P2"])
        machine = await context.open_acta("diputados")
        await machine.load_mesa_info(654321)
        await machine.select_jee("JEE CUSCO")
        await machine.commit_mesa_data()
        adapter.fail_writes = True
        with pytest.raises(StorageWriteError):
            await machine.add_vote_entry(VoteEntryDraft("P1"))
        return machine

    machine = asyncio.run(scenario())

    assert machine.commit_status is CommitStatus.FAILED
    assert machine.acta.vote_entries == []
    assert machine.state is ActaState.SESSION_ACTIVE


def test_failed_read_during_commit_marks_failure(reference, clock, tmp_path):
    adapter = ToggleAdapter()
    context = build_context(
        load_settings(STORAGE_BACKEND="memory", STORAGE_PATH=tmp_path), reference, adapter=adapter, clock=clock
    )

    async def scenario():
        await context.repository.save_selected_organizations(["P1", "P2"])
        machine = await context.open_acta("diputados")
        await machine.load_mesa_info(654321)
        await machine.select_jee("JEE CUSCO")
        await machine.commit_mesa_data()
        adapter.fail_reads = True
        with pytest.raises(StorageReadError):
            await machine.add_vote_entry(VoteEntryDraft("BLANCO"))
        adapter.fail_reads = False
        stored = await context.repository.get_acta("diputados", 0)
        return machine, stored

    machine, stored = asyncio.run(scenario())

    assert machine.commit_status is CommitStatus.FAILED
    assert machine.acta.vote_entries == []
    assert stored.mesa_number == 654321
    assert stored.vote_entries == []


def test_reinitialize_resets_to_empty(start_session):
    async def scenario():
        machine = await start_session("diputados")
        await machine.add_vote_entry(VoteEntryDraft("P1"))
        return machine, await machine.reinitialize()

    machine, result = asyncio.run(scenario())

    assert result.state is ActaState.EMPTY
    assert machine.acta.is_empty
    assert not machine.acta.is_mesa_data_saved
    assert machine.acta.vote_limits.preferential1 == 4
