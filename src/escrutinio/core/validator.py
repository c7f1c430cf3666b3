"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/core/validator.py`.
Reglas puras para cédulas individuales y para las precondiciones de mesa.
Cada regla devuelve un ``ValidationResult``; ninguna lanza excepciones ni
modifica el acta. Las reglas compuestas se evalúan en orden y se detienen
en el primer error.

Componentes detectados:
  - is_blank_or_null
  - validate_entry
  - can_add_entry
  - validate_mesa_number
  - validate_location
  - validate_circunscripcion
  - validate_organizations
  - validate_mesa_data
  - can_set_cedulas_excedentes
  - can_finalize

======================== ENGLISH ========================
File: `src/escrutinio/core/validator.py`.
Pure rules for single ballots and for mesa preconditions. Each rule returns
a ``ValidationResult``; none raises or mutates the acta. Composite rules are
evaluated in order and stop at the first failure.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from escrutinio.categories import ElectoralCategory
from escrutinio.schemas import SPECIAL_PARTIES, Acta, SelectedLocation, VoteLimits

from .models import PoliticalOrganization, ValidationResult, VoteEntryDraft

MAX_MESA_NUMBER = 999999


def is_blank_or_null(party: Optional[str]) -> bool:
    return party in SPECIAL_PARTIES


def _check_preferential_limit(slot: int, value: Optional[int], limit: int) -> ValidationResult:
    if value is not None and (value < 0 or value > limit):
        return ValidationResult.fail(f"El Voto Preferencial {slot} no puede exceder {limit}")
    return ValidationResult.ok()


def validate_entry(
    entry: VoteEntryDraft,
    vote_limits: VoteLimits,
    category: ElectoralCategory,
) -> ValidationResult:
    """Valida una cédula propuesta.

    Orden de verificación: organización elegida, tope del preferencial 1,
    tope del preferencial 2, sin preferenciales en BLANCO/NULO y
    preferenciales distintos cuando ambos están habilitados.

    Args:
        entry: Cédula propuesta por el operador.
        vote_limits: Topes preferenciales del acta.
        category: Categoría con los slots habilitados.

    Returns:
        ValidationResult: Primer error encontrado o resultado válido.

    English:
        Validate a prospective ballot. Checks run in a fixed order and stop
        at the first failure.
    """
    if not entry.party:
        return ValidationResult.fail("Debe seleccionar una organización política")

    pref1 = entry.preferential_vote1 or 0
    pref2 = entry.preferential_vote2 or 0

    if category.has_preferential1:
        result = _check_preferential_limit(1, pref1, vote_limits.preferential1)
        if not result.is_valid:
            return result

    if category.has_preferential2:
        result = _check_preferential_limit(2, pref2, vote_limits.preferential2)
        if not result.is_valid:
            return result

    if is_blank_or_null(entry.party) and (pref1 > 0 or pref2 > 0):
        return ValidationResult.fail("No se pueden ingresar votos preferenciales con BLANCO o NULO")

    if category.has_preferential1 and category.has_preferential2:
        if pref1 > 0 and pref2 > 0 and pref1 == pref2:
            return ValidationResult.fail("Los votos preferenciales 1 y 2 deben tener valores diferentes")

    return ValidationResult.ok()


def can_add_entry(current_count: int, total_electores: int) -> ValidationResult:
    if current_count >= total_electores:
        return ValidationResult.fail(
            f"No se pueden agregar más cédulas. Límite alcanzado: {total_electores} electores hábiles"
        )
    return ValidationResult.ok()


def validate_mesa_number(mesa_number: int) -> ValidationResult:
    if mesa_number < 1 or mesa_number > MAX_MESA_NUMBER:
        return ValidationResult.fail("El número de mesa debe tener 6 dígitos")
    return ValidationResult.ok()


def validate_location(location: SelectedLocation) -> ValidationResult:
    """Ubicación completa: departamento, provincia, distrito y JEE.

    English: Complete location: departamento, provincia, distrito and JEE.
    """
    if not location.departamento:
        return ValidationResult.fail("Debe seleccionar un Departamento")
    if not location.provincia:
        return ValidationResult.fail("Debe seleccionar una Provincia")
    if not location.distrito:
        return ValidationResult.fail("Debe seleccionar un Distrito")
    if not location.jee:
        return ValidationResult.fail("Debe seleccionar un JEE")
    return ValidationResult.ok()


def validate_circunscripcion(circunscripcion: str) -> ValidationResult:
    if not circunscripcion or not circunscripcion.strip():
        return ValidationResult.fail("Debe seleccionar una Circunscripción Electoral")
    return ValidationResult.ok()


def validate_organizations(
    selected_keys: Iterable[str],
    available: Iterable[PoliticalOrganization],
    circunscripcion: str,
) -> ValidationResult:
    """Al menos una organización no especial habilitada.

    English: At least one non-special organization must be enabled.
    """
    keys: List[str] = list(selected_keys)
    if not keys:
        return ValidationResult.fail("Debe activar al menos una Organización Política en Configuración")
    enabled = set(keys)
    regular = [org for org in available if org.key in enabled and not org.is_special]
    if not regular:
        return ValidationResult.fail(
            f"No hay Organizaciones Políticas registradas para la Circunscripción electoral: {circunscripcion}"
        )
    return ValidationResult.ok()


def validate_mesa_data(
    acta: Acta,
    selected_keys: Iterable[str],
    available: Iterable[PoliticalOrganization],
) -> ValidationResult:
    """Precondiciones para registrar los datos de mesa.

    English: Preconditions for committing mesa data; first failure wins.
    """
    checks = (
        lambda: validate_mesa_number(acta.mesa_number),
        lambda: validate_location(acta.selected_location),
        lambda: validate_circunscripcion(acta.selected_location.circunscripcion_electoral),
        lambda: validate_organizations(
            selected_keys, available, acta.selected_location.circunscripcion_electoral
        ),
    )
    for check in checks:
        result = check()
        if not result.is_valid:
            return result
    if acta.total_electores <= 0:
        return ValidationResult.fail("El Total de Electores Hábiles debe ser mayor a 0")
    return ValidationResult.ok()


def can_set_cedulas_excedentes(acta: Acta, value: int) -> ValidationResult:
    if acta.is_form_finalized:
        return ValidationResult.fail("El acta ya fue finalizada")
    if value < 0:
        return ValidationResult.fail("Las Cédulas Excedentes no pueden ser negativas")
    if len(acta.vote_entries) != acta.total_electores:
        return ValidationResult.fail(
            "Las Cédulas Excedentes solo se registran cuando se alcanzan los electores hábiles"
        )
    return ValidationResult.ok()


def can_finalize(acta: Acta) -> ValidationResult:
    """Reglas de cierre: datos guardados, al menos una cédula y TCV fijo.

    English:
        Closing rules: mesa data saved, at least one ballot, and the entry
        count matching an inherited TCV.
    """
    if acta.is_form_finalized:
        return ValidationResult.fail("El acta ya fue finalizada")
    if not acta.is_mesa_data_saved:
        return ValidationResult.fail("Debe guardar los datos de la mesa antes de finalizar")
    count = len(acta.vote_entries)
    if count == 0:
        return ValidationResult.fail("Debe registrar al menos un voto antes de finalizar")
    if acta.tcv_source == "inherited" and acta.tcv is not None and count != acta.tcv:
        return ValidationResult.fail(
            f"El número de cédulas ({count}) no coincide con el TCV registrado para la mesa ({acta.tcv})"
        )
    return ValidationResult.ok()
