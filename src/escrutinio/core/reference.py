"""Interfaz con los datos de referencia geográficos y de organizaciones.

Interface to the geographic and organization reference data. Loading the
static catalogs is done elsewhere; this module only defines what the core
consumes and an in-memory catalog built from already-loaded records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

from .models import MesaInfo, PoliticalOrganization


class ReferenceData(Protocol):
    """Consultas de referencia consumidas por el núcleo.

    English: Reference queries consumed by the core.
    """

    def get_mesa_info(self, mesa_number: int) -> Optional[MesaInfo]:
        ...

    def circunscripcion_options(self, category: str) -> List[str]:
        ...

    def vote_limit(self, category: str, circunscripcion: str) -> Optional[int]:
        ...

    def organizations(self) -> List[PoliticalOrganization]:
        ...

    def jee_id(self, jee: str) -> Optional[str]:
        ...


@dataclass(frozen=True)
class CircunscripcionRecord:
    """Fila del catálogo de circunscripciones.

    English: Circunscripción catalog row. ``category`` is empty for the
    departmental (multi-district) records.
    """

    circunscripcion_electoral: str
    category: str = ""
    departamento: str = ""
    provincia: str = ""


@dataclass
class InMemoryReferenceData:
    """Catálogo de referencia en memoria.

    English: In-memory reference catalog.
    """

    mesas: Dict[int, MesaInfo] = field(default_factory=dict)
    circunscripciones: List[CircunscripcionRecord] = field(default_factory=list)
    vote_limits: Dict[Tuple[str, str], int] = field(default_factory=dict)
    catalog: List[PoliticalOrganization] = field(default_factory=list)
    jees: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_records(
        cls,
        *,
        mesas: Iterable[MesaInfo] = (),
        circunscripciones: Iterable[CircunscripcionRecord] = (),
        vote_limits: Optional[Mapping[Tuple[str, str], int]] = None,
        organizations: Iterable[PoliticalOrganization] = (),
        jees: Optional[Mapping[str, str]] = None,
    ) -> "InMemoryReferenceData":
        return cls(
            mesas={mesa.mesa_number: mesa for mesa in mesas},
            circunscripciones=list(circunscripciones),
            vote_limits=dict(vote_limits or {}),
            catalog=list(organizations),
            jees=dict(jees or {}),
        )

    def get_mesa_info(self, mesa_number: int) -> Optional[MesaInfo]:
        return self.mesas.get(mesa_number)

    def circunscripcion_options(self, category: str) -> List[str]:
        """Circunscripciones válidas para la categoría.

        Las categorías con registro propio devuelven solo el suyo; el resto
        usa las circunscripciones departamentales, ordenadas y sin repetir.

        English:
            Valid circunscripciones for the category. Categories with their
            own record return only that one; the rest use the departmental
            circunscripciones, sorted and de-duplicated.
        """
        specific = [
            record.circunscripcion_electoral
            for record in self.circunscripciones
            if record.category == category and record.circunscripcion_electoral.strip()
        ]
        if specific:
            return specific[:1]
        departmental = {
            record.circunscripcion_electoral
            for record in self.circunscripciones
            if not record.category.strip() and record.circunscripcion_electoral.strip()
        }
        return sorted(departmental)

    def vote_limit(self, category: str, circunscripcion: str) -> Optional[int]:
        exact = self.vote_limits.get((category, circunscripcion))
        if exact is not None:
            return exact
        for (limit_category, _), limit in self.vote_limits.items():
            if limit_category == category and not circunscripcion:
                return limit
        return None

    def organizations(self) -> List[PoliticalOrganization]:
        return list(self.catalog)

    def jee_id(self, jee: str) -> Optional[str]:
        return self.jees.get(jee)
