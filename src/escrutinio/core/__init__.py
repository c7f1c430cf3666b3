"""Núcleo del ciclo de vida del acta.

Acta lifecycle core: storage adapters, repository, validator, tally engine,
mesa ledger, state machine and category navigation.
"""

from .adapters import (
    InMemoryStorageAdapter,
    JsonFileStorageAdapter,
    SqliteStorageAdapter,
    StorageAdapter,
    StorageError,
    StorageReadError,
    StorageWriteError,
)
from .mesa_ledger import MesaLedger, MesaRecord
from .models import ActaState, CommitStatus, TransitionResult, ValidationResult, VoteEntryDraft
from .navigation import CategoryNavigator
from .repository import ActaRepository, StorageKeys
from .state_machine import ActaStateMachine

__all__ = [
    "ActaRepository",
    "ActaState",
    "ActaStateMachine",
    "CategoryNavigator",
    "CommitStatus",
    "InMemoryStorageAdapter",
    "JsonFileStorageAdapter",
    "MesaLedger",
    "MesaRecord",
    "SqliteStorageAdapter",
    "StorageAdapter",
    "StorageError",
    "StorageKeys",
    "StorageReadError",
    "StorageWriteError",
    "TransitionResult",
    "ValidationResult",
    "VoteEntryDraft",
]
