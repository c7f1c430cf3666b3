"""Pruebas de la configuración de logging estructurado.

Structured logging setup tests.
"""

import asyncio
import json
import logging

import pytest
import structlog

from escrutinio.core.models import VoteEntryDraft
from escrutinio.logging import bind_context, setup_logging


@pytest.fixture
def configured_logging(tmp_path):
    root = logging.getLogger()
    previous_handlers = list(root.handlers)
    previous_level = root.level
    logger = setup_logging("info", tmp_path)

    def read_events():
        for handler in root.handlers:
            handler.flush()
        log_file = tmp_path / "logs" / "escrutinio.log"
        lines = log_file.read_text(encoding="utf-8").splitlines()
        return [json.loads(line) for line in lines if line.strip()]

    try:
        yield logger, read_events
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers = previous_handlers
        root.setLevel(previous_level)
        structlog.reset_defaults()


def test_setup_logging_writes_json_events(configured_logging):
    logger, read_events = configured_logging

    bind_context(logger, category="diputados", mesa_number=654321, acta_index=0).info("acta_finalized")
    event = read_events()[-1]

    assert event["event"] == "acta_finalized"
    assert event["category"] == "diputados"
    assert event["mesa_number"] == "654321"
    assert event["acta_index"] == 0
    assert event["level"] == "info"
    assert event["logger"] == "escrutinio"
    assert "timestamp" in event


def test_stdlib_records_share_the_json_format(configured_logging):
    _, read_events = configured_logging

    logging.getLogger("escrutinio.core.repository").warning("repository_read_degraded key=%s", "electoral_category_data")
    logging.getLogger("escrutinio.core.repository").debug("below_threshold")
    event = read_events()[-1]

    assert event["event"] == "repository_read_degraded key=electoral_category_data"
    assert event["logger"] == "escrutinio.core.repository"
    assert event["level"] == "warning"
    assert "timestamp" in event


def test_acta_events_carry_bound_context(configured_logging, start_session):
    _, read_events = configured_logging

    async def scenario():
        machine = await start_session("diputados")
        await machine.add_vote_entry(VoteEntryDraft("ZZ"))

    asyncio.run(scenario())
    events = {event["event"]: event for event in read_events()}

    committed = events["mesa_data_committed"]
    assert committed["category"] == "diputados"
    assert committed["mesa_number"] == "654321"
    assert committed["acta_index"] == 0
    rejected = events["acta_transition_rejected"]
    assert rejected["reason"] == "La organización política ZZ no está habilitada"
    assert rejected["state"] == "SESSION_ACTIVE"


def test_bind_context_skips_missing_values():
    logger = structlog.get_logger()

    bound = bind_context(logger)

    assert structlog.get_context(bound) == {}
