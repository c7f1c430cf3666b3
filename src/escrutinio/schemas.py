"""Esquemas Pydantic para los registros persistidos de actas.

Pydantic schemas for persisted acta records.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

BLANCO = "BLANCO"
NULO = "NULO"
SPECIAL_PARTIES = (BLANCO, NULO)

ModelT = TypeVar("ModelT", bound=BaseModel)


class _CamelModel(BaseModel):
    """Base con claves camelCase en disco y snake_case en Python.

    English: Base model with camelCase keys on disk and snake_case in Python.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_payload(self) -> Dict[str, Any]:
        """Serializa al formato JSON persistido.

        English: Serialize to the persisted JSON shape.
        """
        return self.model_dump(mode="json", by_alias=True)


class SelectedLocation(_CamelModel):
    """Ubicación geográfica y jurisdicción de una mesa.

    English: Geographic location and jurisdiction of a mesa.
    """

    departamento: str = ""
    provincia: str = ""
    distrito: str = ""
    circunscripcion_electoral: str = ""
    jee: str = ""

    @field_validator("departamento", "provincia", "distrito", "circunscripcion_electoral", "jee")
    @classmethod
    def strip_text(cls, value: str) -> str:
        """Normaliza texto eliminando espacios.

        English: Normalize text by trimming whitespace.
        """
        return value.strip()


class VoteLimits(_CamelModel):
    """Topes de voto preferencial para la categoría.

    English: Preferential vote caps for the category.
    """

    preferential1: int = Field(default=0, ge=0)
    preferential2: int = Field(default=0, ge=0)

    @property
    def max_preferential_number(self) -> int:
        return max(self.preferential1, self.preferential2)


class VoteEntry(_CamelModel):
    """Una cédula registrada.

    English: One recorded ballot.
    """

    table_number: int = Field(ge=1)
    party: str = Field(min_length=1)
    preferential_vote1: Optional[int] = None
    preferential_vote2: Optional[int] = None

    @property
    def is_blank_or_null(self) -> bool:
        return self.party in SPECIAL_PARTIES


class Acta(_CamelModel):
    """Registro de conteo de una mesa dentro de una categoría electoral.

    Attributes:
        mesa_number (int): Número de mesa de 6 dígitos, 0 si no se ha fijado.
        acta_number (str): Identificador derivado ``mesa-jee-categoria``.
        total_electores (int): Tope de cédulas admisibles.
        vote_entries (List[VoteEntry]): Cédulas en orden físico de conteo.
        tcv (Optional[int]): Total de ciudadanos que votaron.
        tcv_source (Optional[str]): ``derived`` o ``inherited``.
        counter_mesa (Optional[int]): Conteos guardados de la misma mesa.

    English:
        Count record for one mesa within one election category.
    """

    mesa_number: int = Field(default=0, ge=0, le=999999)
    acta_number: str = ""
    total_electores: int = Field(default=0, ge=0)
    vote_entries: List[VoteEntry] = Field(default_factory=list)
    cedulas_excedentes: int = Field(default=0, ge=0)
    tcv: Optional[int] = Field(default=None, ge=0)
    tcv_source: Optional[Literal["derived", "inherited"]] = None
    counter_mesa: Optional[int] = None
    is_mesa_data_saved: bool = False
    is_form_finalized: bool = False
    are_mesa_fields_locked: bool = False
    is_conformidad_downloaded: bool = False
    is_partial_recount: bool = False
    is_paused: bool = False
    paused_duration_ms: int = Field(default=0, ge=0)
    last_pause_time: Optional[datetime] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    selected_location: SelectedLocation = Field(default_factory=SelectedLocation)
    vote_limits: VoteLimits = Field(default_factory=VoteLimits)

    @model_validator(mode="after")
    def entries_are_consistent(self) -> "Acta":
        """Las cédulas no superan el tope y su numeración es creciente.

        English: Entries never exceed the cap and numbering is increasing.
        """
        if self.total_electores and len(self.vote_entries) > self.total_electores:
            raise ValueError(
                f"vote_entries ({len(self.vote_entries)}) exceeds total_electores ({self.total_electores})"
            )
        previous = 0
        for entry in self.vote_entries:
            if entry.table_number <= previous:
                raise ValueError("table_number values must be strictly increasing")
            previous = entry.table_number
        return self

    @property
    def is_empty(self) -> bool:
        return self.mesa_number == 0 and self.acta_number == "" and not self.vote_entries

    @property
    def next_table_number(self) -> int:
        if not self.vote_entries:
            return 1
        return max(entry.table_number for entry in self.vote_entries) + 1


class CategoryData(_CamelModel):
    """Colección de actas de una categoría.

    English: Collection of actas for one category.
    """

    actas: List[Acta] = Field(default_factory=list)


def parse_record(model: Type[ModelT], payload: Any, *, key: str) -> Optional[ModelT]:
    """Valida un payload persistido; devuelve ``None`` si está corrupto.

    English:
        Validate a persisted payload; return ``None`` when it is malformed so
        the caller can fall back to defaults.
    """
    if payload is None:
        return None
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        logger.warning(
            "persisted_payload_invalid key=%s model=%s errors=%s",
            key,
            model.__name__,
            exc.error_count(),
        )
        return None
