"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/escrutinio/config.py`.
Configuración del motor de escrutinio desde variables de entorno y `.env`,
más un archivo YAML opcional que ajusta las reglas por categoría.

Componentes detectados:
  - EscrutinioSettings
  - CategoryRule
  - load_settings
  - load_category_rules

======================== ENGLISH ========================
File: `src/escrutinio/config.py`.
Engine configuration from environment variables and `.env`, plus an
optional YAML file tuning per-category rules.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .categories import DEFAULT_CATEGORY, ELECTORAL_CATEGORIES, CategoryRegistry

logger = logging.getLogger(__name__)

_ENV_PATH = Path(".env")
_ENV_LOCAL_PATH = Path(".env.local")
load_dotenv(_ENV_PATH, override=False)
load_dotenv(_ENV_LOCAL_PATH, override=False)

_KNOWN_CATEGORIES = {category.key for category in ELECTORAL_CATEGORIES}


class EscrutinioSettings(BaseSettings):
    """Variables de entorno y archivo .env del motor.

    English: Environment variables and .env file for the engine.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    STORAGE_BACKEND: Literal["memory", "json", "sqlite"] = "json"
    STORAGE_PATH: Path = Path("data")
    LOG_LEVEL: str = "INFO"
    DEFAULT_CATEGORY: str = DEFAULT_CATEGORY
    CATEGORY_RULES_PATH: Optional[Path] = None

    @field_validator("LOG_LEVEL")
    @classmethod
    def _validate_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unsupported log level: {value}")
        return level

    @field_validator("DEFAULT_CATEGORY")
    @classmethod
    def _validate_category(cls, value: str) -> str:
        if value not in _KNOWN_CATEGORIES:
            raise ValueError(f"unknown electoral category: {value}")
        return value


def load_settings(**overrides: Any) -> EscrutinioSettings:
    """/** Carga y valida configuración, fallando con detalle. / Load and validate configuration, failing with details. **/"""
    try:
        return EscrutinioSettings(**overrides)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc


class CategoryRule(BaseModel):
    """Ajustes de una categoría en el archivo de reglas.

    English: Per-category overrides in the rules file.
    """

    model_config = ConfigDict(extra="forbid")

    preferential1: Optional[bool] = None
    preferential2: Optional[bool] = None
    default_limit: Optional[int] = Field(default=None, ge=0)
    label: Optional[str] = Field(default=None, min_length=1)

    def as_overrides(self) -> Dict[str, Any]:
        fields = {
            "has_preferential1": self.preferential1,
            "has_preferential2": self.preferential2,
            "default_limit": self.default_limit,
            "label": self.label,
        }
        return {name: value for name, value in fields.items() if value is not None}


class CategoryRulesFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    categories: Dict[str, CategoryRule] = Field(default_factory=dict)

    @field_validator("categories")
    @classmethod
    def _known_categories(cls, value: Dict[str, CategoryRule]) -> Dict[str, CategoryRule]:
        unknown = sorted(set(value) - _KNOWN_CATEGORIES)
        if unknown:
            raise ValueError(f"unknown electoral categories: {', '.join(unknown)}")
        return value


def _load_yaml_mapping(path: Path) -> dict[str, Any]:
    """Load a YAML mapping or raise a user-facing error.

    Carga un mapa YAML o lanza un error orientado al usuario.
    """
    if not path.exists():
        raise FileNotFoundError(f"Falta {path.as_posix()} (Missing {path.as_posix()}).")
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"{path.name} tiene errores de sintaxis YAML ({path.name} has YAML syntax errors).") from exc
    if not isinstance(raw, dict):
        raise ValueError(f"{path.name} debe ser un mapa YAML ({path.name} must be a YAML mapping).")
    return raw


def load_category_rules(path: Optional[Path] = None) -> CategoryRegistry:
    """Registro de categorías con los ajustes del archivo YAML aplicados.

    English: Category registry with the YAML overrides applied. Without a
    path the built-in table is returned unchanged.
    """
    registry = CategoryRegistry()
    if path is None:
        return registry
    raw = _load_yaml_mapping(path)
    try:
        rules = CategoryRulesFile.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(
            f"{path.name} no cumple el esquema requerido ({path.name} does not meet the required schema)."
        ) from exc
    overrides = {key: rule.as_overrides() for key, rule in rules.categories.items()}
    logger.debug("category_rules_loaded path=%s categories=%s", path, sorted(overrides))
    return registry.with_overrides(overrides)
