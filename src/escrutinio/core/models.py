"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/core/models.py`.
Tipos de dominio no persistidos: resultados de validación y transición,
borradores de cédula, organizaciones políticas, información de mesa y
resultados del recuento.

Componentes detectados:
  - ActaState
  - CommitStatus
  - ValidationResult
  - TransitionResult
  - VoteEntryDraft
  - PoliticalOrganization
  - MesaInfo
  - PreferentialCounts
  - TallyStatistics
  - TallyResult

======================== ENGLISH ========================
File: `src/escrutinio/core/models.py`.
Non-persisted domain types: validation and transition results, ballot
drafts, political organizations, mesa information and tally results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from escrutinio.schemas import SPECIAL_PARTIES


class ActaState(str, Enum):
    """Estados del ciclo de vida de un acta.

    English: Acta lifecycle states.
    """

    EMPTY = "EMPTY"
    MESA_LOADED = "MESA_LOADED"
    SESSION_ACTIVE = "SESSION_ACTIVE"
    PAUSED = "PAUSED"
    FINALIZED = "FINALIZED"


class CommitStatus(str, Enum):
    """Estado de la última escritura de una transición.

    English: Status of the last transition write.
    """

    NONE = "NONE"
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class ValidationResult:
    """Resultado de una regla de dominio.

    Attributes:
        is_valid (bool): ``True`` si la regla se cumple.
        message (str): Mensaje para el operador cuando falla.

    English:
        Outcome of a domain rule.
    """

    is_valid: bool
    message: str = ""

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(True)

    @classmethod
    def fail(cls, message: str) -> "ValidationResult":
        return cls(False, message)


@dataclass(frozen=True)
class TransitionResult:
    """Resultado de una transición de la máquina de estados.

    English: Outcome of a state machine transition.
    """

    is_valid: bool
    message: str
    state: ActaState
    commit_status: CommitStatus = CommitStatus.NONE


@dataclass(frozen=True)
class VoteEntryDraft:
    """Cédula propuesta por el operador antes de validarse.

    English: Operator-proposed ballot before validation.
    """

    party: str = ""
    preferential_vote1: Optional[int] = None
    preferential_vote2: Optional[int] = None


@dataclass(frozen=True)
class PoliticalOrganization:
    """Organización política del catálogo de referencia.

    English: Political organization from the reference catalog.
    """

    key: str
    name: str
    order: Optional[int] = None

    @property
    def is_special(self) -> bool:
        return self.key in SPECIAL_PARTIES or any(special in self.name.upper() for special in SPECIAL_PARTIES)

    @property
    def display_name(self) -> str:
        return f"{self.order} | {self.name}" if self.order is not None else self.name


@dataclass(frozen=True)
class MesaInfo:
    """Datos de referencia de una mesa.

    English: Reference data for a mesa.
    """

    mesa_number: int
    departamento: str
    provincia: str
    distrito: str
    circunscripcion_electoral: str
    total_electores: int
    tipo_ubicacion: str = "NACIONAL"


@dataclass
class PreferentialCounts:
    """Votos preferenciales por número de candidato de una organización.

    English: Preferential votes per candidate number for one organization.
    """

    cells: Dict[int, int]
    total: int = 0

    def to_dict(self) -> Dict[str, int]:
        payload = {str(number): count for number, count in self.cells.items()}
        payload["total"] = self.total
        return payload


@dataclass(frozen=True)
class TallyStatistics:
    """Estadísticas derivadas del recuento.

    English: Derived tally statistics.
    """

    total_valid_votes: int
    blank_votes: int
    null_votes: int
    blank_and_null: int
    total_voters_who_voted: int
    total_electores: int
    participation_rate: float
    absenteeism_rate: float


@dataclass
class TallyResult:
    """Conteo por organización, matriz preferencial y estadísticas.

    English: Per-organization count, preferential matrix and statistics.
    """

    vote_count: Dict[str, int]
    preferential_matrix: Dict[str, PreferentialCounts]
    statistics: TallyStatistics
    ranking: List[Dict[str, object]] = field(default_factory=list)
