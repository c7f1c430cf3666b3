"""Motor de recuento: conteo por organización, matriz preferencial y estadísticas.

Tally engine: per-organization count, preferential matrix and statistics.
Pure functions; nothing here touches storage.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence

from escrutinio.schemas import BLANCO, NULO, SPECIAL_PARTIES, VoteEntry

from .models import PoliticalOrganization, PreferentialCounts, TallyResult, TallyStatistics


def _empty_matrix(max_preferential: int) -> PreferentialCounts:
    return PreferentialCounts(cells={number: 0 for number in range(1, max_preferential + 1)})


def build_statistics(vote_count: Dict[str, int], total_electores: int) -> TallyStatistics:
    blank_votes = vote_count.get(BLANCO, 0)
    null_votes = vote_count.get(NULO, 0)
    total_valid = sum(count for party, count in vote_count.items() if party not in SPECIAL_PARTIES)
    blank_and_null = blank_votes + null_votes
    voted = total_valid + blank_and_null
    participation = voted / total_electores * 100 if total_electores > 0 else 0.0
    return TallyStatistics(
        total_valid_votes=total_valid,
        blank_votes=blank_votes,
        null_votes=null_votes,
        blank_and_null=blank_and_null,
        total_voters_who_voted=voted,
        total_electores=total_electores,
        participation_rate=participation,
        absenteeism_rate=100 - participation,
    )


def vote_percentage(party_votes: int, total_votes: int) -> float:
    if total_votes == 0:
        return 0.0
    return party_votes / total_votes * 100


def build_ranking(
    vote_count: Dict[str, int],
    organizations: Sequence[PoliticalOrganization] = (),
) -> List[Dict[str, object]]:
    """Organizaciones no especiales ordenadas por votos.

    Los empates conservan el orden configurado; las claves sin
    organización en el catálogo van al final de su grupo.

    English:
        Non-special organizations sorted by votes descending; ties keep the
        configured order.
    """
    by_key = {org.key: org for org in organizations}
    position = {org.key: index for index, org in enumerate(organizations)}
    total_valid = sum(count for party, count in vote_count.items() if party not in SPECIAL_PARTIES)
    parties = [party for party in vote_count if party not in SPECIAL_PARTIES]
    parties.sort(key=lambda party: (-vote_count[party], position.get(party, len(position))))
    ranking: List[Dict[str, object]] = []
    for party in parties:
        org = by_key.get(party)
        ranking.append(
            {
                "party": party,
                "name": org.name if org else party,
                "votes": vote_count[party],
                "percentage": vote_percentage(vote_count[party], total_valid),
            }
        )
    return ranking


def tally(
    entries: Sequence[VoteEntry],
    organizations: Sequence[PoliticalOrganization],
    max_preferential: int,
    total_electores: int = 0,
    organization_keys: Optional[Iterable[str]] = None,
) -> TallyResult:
    """Recuento en una sola pasada sobre las cédulas.

    Args:
        entries: Cédulas del acta.
        organizations: Organizaciones configuradas (incluye BLANCO/NULO).
        max_preferential: Número de candidato más alto admitido.
        total_electores: Electores hábiles para las tasas.
        organization_keys: Claves a sembrar; por defecto las de ``organizations``.

    Returns:
        TallyResult: Conteo, matriz preferencial, estadísticas y ranking.

    English:
        Single-pass tally. Preferential values inside ``[1, max_preferential]``
        are added to the party's matrix when the party has one. Ballots for
        BLANCO and NULO never carry preferential votes once validated, so
        their matrices stay at zero.
    """
    keys = list(organization_keys) if organization_keys is not None else [org.key for org in organizations]
    for special in SPECIAL_PARTIES:
        if special not in keys:
            keys.append(special)

    vote_count: Dict[str, int] = {key: 0 for key in keys}
    matrix: Dict[str, PreferentialCounts] = {key: _empty_matrix(max_preferential) for key in keys}

    for entry in entries:
        vote_count[entry.party] = vote_count.get(entry.party, 0) + 1
        counts = matrix.get(entry.party)
        if counts is None:
            continue
        for value in (entry.preferential_vote1, entry.preferential_vote2):
            if value is not None and 1 <= value <= max_preferential:
                counts.cells[value] += 1
                counts.total += 1

    return TallyResult(
        vote_count=vote_count,
        preferential_matrix=matrix,
        statistics=build_statistics(vote_count, total_electores),
        ranking=build_ranking(vote_count, organizations),
    )
