"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/core/repository.py`.
Mapea el almacenamiento clave/valor a registros de dominio: datos por
categoría, categoría activa, índice de acta activa, selecciones de
organizaciones y modo de recuento parcial.

Las lecturas fallidas o corruptas degradan a valores por defecto, salvo
dentro de los guardados que combinan datos previos, donde abortan el
guardado. Las escrituras fallidas se propagan al llamador.

Componentes detectados:
  - StorageKeys
  - ActaRepository

======================== ENGLISH ========================
File: `src/escrutinio/core/repository.py`.
Maps key/value storage onto domain records: per-category data, active
category, active acta index, organization selections and partial recount
mode.

Failed or corrupt reads degrade to defaults, except inside
read-modify-write saves where a failed read aborts the save. Failed
writes propagate to the caller.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import TypeAdapter, ValidationError

from escrutinio.categories import DEFAULT_CATEGORY, CategoryRegistry
from escrutinio.schemas import SPECIAL_PARTIES, Acta, CategoryData, parse_record

from .adapters import StorageAdapter, StorageReadError

logger = logging.getLogger(__name__)

ALL_CATEGORIES = "*"


class StorageKeys:
    """Claves lógicas persistidas.

    English: Persisted logical keys.
    """

    ACTIVE_CATEGORY = "electoral_active_category"
    CATEGORY_DATA = "electoral_category_data"
    ACTIVE_ACTA_INDEX = "electoral_active_acta_index"
    SELECTED_ORGANIZATIONS = "electoral_selected_organizations"
    CIRCUNSCRIPCION_ORGANIZATIONS = "electoral_circunscripcion_organizations"
    CATEGORY_ORGANIZATIONS = "electoral_category_organizations"
    PARTIAL_RECOUNT_ORGANIZATIONS = "electoral_partial_recount_organizations"
    PARTIAL_RECOUNT_MODE = "electoral_partial_recount_mode"

    @classmethod
    def all(cls) -> List[str]:
        return [
            cls.ACTIVE_CATEGORY,
            cls.CATEGORY_DATA,
            cls.ACTIVE_ACTA_INDEX,
            cls.SELECTED_ORGANIZATIONS,
            cls.CIRCUNSCRIPCION_ORGANIZATIONS,
            cls.CATEGORY_ORGANIZATIONS,
            cls.PARTIAL_RECOUNT_ORGANIZATIONS,
            cls.PARTIAL_RECOUNT_MODE,
        ]


_ALL_CATEGORY_DATA = TypeAdapter(Dict[str, CategoryData])
_INDEX_MAP = TypeAdapter(Dict[str, int])
_FLAG_MAP = TypeAdapter(Dict[str, bool])
_KEY_LIST = TypeAdapter(List[str])
_KEY_LIST_MAP = TypeAdapter(Dict[str, List[str]])
_NESTED_KEY_LIST_MAP = TypeAdapter(Dict[str, Dict[str, List[str]]])


class ActaRepository:
    """Repositorio de actas sobre cualquier ``StorageAdapter``.

    English: Acta repository over any ``StorageAdapter``.
    """

    def __init__(
        self,
        adapter: StorageAdapter,
        categories: Optional[CategoryRegistry] = None,
        default_category: str = DEFAULT_CATEGORY,
    ) -> None:
        self.adapter = adapter
        self.categories = categories or CategoryRegistry()
        self.default_category = default_category

    # Lecturas / Reads

    async def _read(self, key: str, strict: bool = False) -> Optional[Any]:
        """Lee una clave; con ``strict`` los fallos de lectura se propagan.

        Las escrituras que combinan datos previos leen en modo estricto para
        no sobrescribir el valor almacenado con valores por defecto.

        English:
            Read a key. Read failures degrade to ``None`` unless ``strict``,
            which read-modify-write paths use so stored data is never
            replaced with defaults.
        """
        try:
            return await self.adapter.get(key)
        except StorageReadError as exc:
            if strict:
                logger.error("repository_read_failed key=%s error=%s", key, exc)
                raise
            logger.warning("repository_read_degraded key=%s error=%s", key, exc)
            return None

    async def _read_typed(self, key: str, adapter: TypeAdapter, default: Any, strict: bool = False) -> Any:
        raw = await self._read(key, strict=strict)
        if raw is None:
            return default
        try:
            return adapter.validate_python(raw)
        except ValidationError as exc:
            logger.warning("persisted_payload_invalid key=%s errors=%s", key, exc.error_count())
            return default

    # Categoría activa / Active category

    async def get_active_category(self) -> str:
        category = await self._read(StorageKeys.ACTIVE_CATEGORY)
        if isinstance(category, str) and category in self.categories:
            return category
        return self.default_category

    async def save_active_category(self, category: str) -> None:
        await self.adapter.set(StorageKeys.ACTIVE_CATEGORY, category)

    # Datos por categoría / Category data

    def default_acta(self, category: Optional[str] = None) -> Acta:
        """Acta vacía con los topes por defecto de la categoría.

        English: Empty acta with the category's default vote limits.
        """
        if category and category in self.categories:
            return Acta(vote_limits=self.categories.vote_limits(category))
        return Acta()

    def default_category_data(self, category: Optional[str] = None) -> CategoryData:
        return CategoryData(actas=[self.default_acta(category)])

    async def get_all_category_data(self, strict: bool = False) -> Dict[str, CategoryData]:
        raw = await self._read(StorageKeys.CATEGORY_DATA, strict=strict)
        if raw is None:
            return {key: self.default_category_data(key) for key in self.categories.keys()}
        try:
            return _ALL_CATEGORY_DATA.validate_python(raw)
        except ValidationError as exc:
            logger.warning(
                "persisted_payload_invalid key=%s errors=%s",
                StorageKeys.CATEGORY_DATA,
                exc.error_count(),
            )
        if not isinstance(raw, dict):
            return {key: self.default_category_data(key) for key in self.categories.keys()}
        # Recupera las categorías sanas de un payload parcialmente corrupto.
        recovered: Dict[str, CategoryData] = {}
        for category, payload in raw.items():
            parsed = parse_record(CategoryData, payload, key=f"{StorageKeys.CATEGORY_DATA}.{category}")
            recovered[str(category)] = parsed or self.default_category_data(str(category))
        return recovered

    async def get_category_data(self, category: str, strict: bool = False) -> CategoryData:
        all_data = await self.get_all_category_data(strict=strict)
        data = all_data.get(category)
        if data is None or not data.actas:
            return self.default_category_data(category)
        return data

    async def save_category_data(self, category: str, data: CategoryData) -> None:
        all_data = await self.get_all_category_data(strict=True)
        all_data[category] = data
        await self.adapter.set(
            StorageKeys.CATEGORY_DATA,
            {key: value.to_payload() for key, value in all_data.items()},
        )

    # Actas / Actas

    async def get_active_acta_index(self, category: str, strict: bool = False) -> int:
        indices = await self._read_typed(StorageKeys.ACTIVE_ACTA_INDEX, _INDEX_MAP, {}, strict=strict)
        index = indices.get(category, 0)
        return index if index >= 0 else 0

    async def save_active_acta_index(self, category: str, index: int) -> None:
        indices = await self._read_typed(StorageKeys.ACTIVE_ACTA_INDEX, _INDEX_MAP, {}, strict=True)
        indices[category] = index
        await self.adapter.set(StorageKeys.ACTIVE_ACTA_INDEX, indices)

    async def get_all_actas(self, category: str) -> List[Acta]:
        data = await self.get_category_data(category)
        return list(data.actas)

    async def get_acta(self, category: str, index: int) -> Optional[Acta]:
        actas = await self.get_all_actas(category)
        if 0 <= index < len(actas):
            return actas[index]
        return None

    async def get_active_acta(self, category: str) -> Acta:
        index = await self.get_active_acta_index(category)
        acta = await self.get_acta(category, index)
        return acta if acta is not None else self.default_acta(category)

    async def save_acta(self, category: str, index: int, acta: Acta) -> int:
        """Guarda un acta en su índice o la agrega al final sin huecos.

        Returns:
            int: Índice final del acta dentro de la categoría.

        English:
            Save an acta in place, or append it (updating the active index)
            when ``index`` is unknown. Never leaves gaps.
        """
        data = await self.get_category_data(category, strict=True)
        actas = list(data.actas)
        if 0 <= index < len(actas):
            actas[index] = acta
            final_index = index
        else:
            actas.append(acta)
            final_index = len(actas) - 1
        await self.save_category_data(category, CategoryData(actas=actas))
        if final_index != index:
            await self.save_active_acta_index(category, final_index)
        return final_index

    async def save_active_acta(self, category: str, acta: Acta) -> int:
        index = await self.get_active_acta_index(category, strict=True)
        return await self.save_acta(category, index, acta)

    async def create_new_acta(self, category: str) -> int:
        data = await self.get_category_data(category, strict=True)
        actas = list(data.actas)
        actas.append(self.default_acta(category))
        new_index = len(actas) - 1
        await self.save_category_data(category, CategoryData(actas=actas))
        await self.save_active_acta_index(category, new_index)
        logger.info("acta_created category=%s index=%s", category, new_index)
        return new_index

    async def find_actas_by_mesa(self, mesa_number: int) -> List[Acta]:
        if mesa_number <= 0:
            return []
        all_data = await self.get_all_category_data()
        return [acta for data in all_data.values() for acta in data.actas if acta.mesa_number == mesa_number]

    # Organizaciones / Organizations

    async def get_selected_organizations(self) -> List[str]:
        return await self._read_typed(StorageKeys.SELECTED_ORGANIZATIONS, _KEY_LIST, [])

    async def save_selected_organizations(self, organization_keys: List[str]) -> None:
        await self.adapter.set(StorageKeys.SELECTED_ORGANIZATIONS, list(organization_keys))

    async def get_all_circunscripcion_organizations(self, strict: bool = False) -> Dict[str, List[str]]:
        return await self._read_typed(StorageKeys.CIRCUNSCRIPCION_ORGANIZATIONS, _KEY_LIST_MAP, {}, strict=strict)

    async def get_circunscripcion_organizations(
        self, circunscripcion: str, category: Optional[str] = None
    ) -> List[str]:
        """Organizaciones habilitadas en una circunscripción.

        Con ``category`` se consulta el alcance circunscripción+categoría.

        English:
            Organizations enabled for a circunscripción; with ``category`` the
            circunscripción+category scope is read instead.
        """
        if category is not None:
            scoped = await self._read_typed(StorageKeys.CATEGORY_ORGANIZATIONS, _NESTED_KEY_LIST_MAP, {})
            return scoped.get(circunscripcion, {}).get(category, [])
        return (await self.get_all_circunscripcion_organizations()).get(circunscripcion, [])

    async def save_circunscripcion_organizations(
        self,
        circunscripcion: str,
        organization_keys: List[str],
        category: Optional[str] = None,
    ) -> None:
        if category is not None:
            scoped = await self._read_typed(
                StorageKeys.CATEGORY_ORGANIZATIONS, _NESTED_KEY_LIST_MAP, {}, strict=True
            )
            scoped.setdefault(circunscripcion, {})[category] = list(organization_keys)
            await self.adapter.set(StorageKeys.CATEGORY_ORGANIZATIONS, scoped)
            return
        all_orgs = await self.get_all_circunscripcion_organizations(strict=True)
        all_orgs[circunscripcion] = list(organization_keys)
        await self.adapter.set(StorageKeys.CIRCUNSCRIPCION_ORGANIZATIONS, all_orgs)

    async def get_partial_recount_organizations(
        self, circunscripcion: str, category: Optional[str] = None
    ) -> List[str]:
        scoped = await self._read_typed(StorageKeys.PARTIAL_RECOUNT_ORGANIZATIONS, _NESTED_KEY_LIST_MAP, {})
        by_category = scoped.get(circunscripcion, {})
        if category is not None and category in by_category:
            return by_category[category]
        return by_category.get(ALL_CATEGORIES, [])

    async def save_partial_recount_organizations(
        self,
        circunscripcion: str,
        organization_keys: List[str],
        category: Optional[str] = None,
    ) -> None:
        scoped = await self._read_typed(
            StorageKeys.PARTIAL_RECOUNT_ORGANIZATIONS, _NESTED_KEY_LIST_MAP, {}, strict=True
        )
        scoped.setdefault(circunscripcion, {})[category or ALL_CATEGORIES] = list(organization_keys)
        await self.adapter.set(StorageKeys.PARTIAL_RECOUNT_ORGANIZATIONS, scoped)

    async def resolve_organization_keys(self, circunscripcion: str, category: str, partial: bool) -> List[str]:
        """Claves habilitadas según el alcance más específico disponible.

        En recuento parcial se usa su propio conjunto; si no, se busca por
        circunscripción+categoría, luego circunscripción y por último la
        selección global. BLANCO y NULO siempre quedan incluidos.

        English:
            Enabled keys from the most specific scope available. Partial
            recounts use their own set; otherwise circunscripción+category,
            then circunscripción, then the global selection. BLANCO and NULO
            are always included.
        """
        keys: List[str] = []
        if circunscripcion:
            if partial:
                keys = await self.get_partial_recount_organizations(circunscripcion, category)
            else:
                keys = await self.get_circunscripcion_organizations(circunscripcion, category)
                if not keys:
                    keys = await self.get_circunscripcion_organizations(circunscripcion)
        if not keys and not partial:
            keys = await self.get_selected_organizations()
        resolved = list(dict.fromkeys(keys))
        for special in SPECIAL_PARTIES:
            if special not in resolved:
                resolved.append(special)
        return resolved

    # Recuento parcial / Partial recount

    async def get_is_partial_recount(self, circunscripcion: str) -> bool:
        modes = await self._read_typed(StorageKeys.PARTIAL_RECOUNT_MODE, _FLAG_MAP, {})
        return bool(modes.get(circunscripcion, False))

    async def save_is_partial_recount(self, circunscripcion: str, is_partial: bool) -> None:
        modes = await self._read_typed(StorageKeys.PARTIAL_RECOUNT_MODE, _FLAG_MAP, {}, strict=True)
        modes[circunscripcion] = is_partial
        await self.adapter.set(StorageKeys.PARTIAL_RECOUNT_MODE, modes)

    # Utilidades / Utilities

    async def list_keys(self) -> List[str]:
        try:
            return await self.adapter.list_keys()
        except StorageReadError as exc:
            logger.warning("repository_list_keys_degraded error=%s", exc)
            return []

    async def clear_all(self) -> None:
        for key in StorageKeys.all():
            await self.adapter.remove(key)
        logger.info("repository_cleared keys=%s", len(StorageKeys.all()))
