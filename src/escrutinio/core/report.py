"""Datos de reporte listos para JSON a partir de un acta.

JSON-ready report data for one acta, consumed by the external document
renderer.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from escrutinio.categories import ElectoralCategory
from escrutinio.schemas import Acta

from .models import PoliticalOrganization
from .tally import tally


def session_seconds(acta: Acta, now: Optional[datetime] = None) -> float:
    if acta.start_time is None:
        return 0.0
    end = acta.end_time or (acta.last_pause_time if acta.is_paused else None) or now
    if end is None:
        return 0.0
    return max((end - acta.start_time).total_seconds() - acta.paused_duration_ms / 1000, 0.0)


def build_acta_report(
    acta: Acta,
    category: ElectoralCategory,
    organizations: Sequence[PoliticalOrganization],
    *,
    organization_keys: Optional[Sequence[str]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Arma el reporte de un acta.

    Args:
        acta: Acta a reportar (normalmente finalizada).
        category: Categoría del acta.
        organizations: Catálogo de organizaciones configuradas.
        organization_keys: Claves habilitadas; por defecto todo el catálogo.
        now: Referencia temporal para actas sin hora de cierre.

    Returns:
        Dict[str, Any]: Snapshot, conteo, matriz, estadísticas y ranking.

    English:
        Build the acta report: snapshot, counts, matrix, statistics, ranking
        and percentages over valid votes.
    """
    enabled = list(organization_keys) if organization_keys is not None else None
    configured = [org for org in organizations if enabled is None or org.key in enabled]
    result = tally(
        acta.vote_entries,
        configured,
        acta.vote_limits.max_preferential_number,
        acta.total_electores,
        organization_keys=enabled,
    )
    stats = result.statistics
    return {
        "category": category.key,
        "category_label": category.label,
        "acta": acta.to_payload(),
        "vote_count": result.vote_count,
        "preferential_matrix": {
            party: counts.to_dict() for party, counts in result.preferential_matrix.items()
        },
        "statistics": {
            "total_valid_votes": stats.total_valid_votes,
            "blank_votes": stats.blank_votes,
            "null_votes": stats.null_votes,
            "blank_and_null": stats.blank_and_null,
            "total_voters_who_voted": stats.total_voters_who_voted,
            "total_electores": stats.total_electores,
            "participation_rate": round(stats.participation_rate, 2),
            "absenteeism_rate": round(stats.absenteeism_rate, 2),
        },
        "ranking": result.ranking,
        "percentages": {row["party"]: row["percentage"] for row in result.ranking},
        "elapsed_seconds": session_seconds(acta, now),
    }
