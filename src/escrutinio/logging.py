"""Configuración de logging estructurado.

Los eventos de structlog y los registros de ``logging`` emitidos por el
núcleo comparten la misma cadena de procesadores: JSON en el archivo
diario ``<storage>/logs/escrutinio.log`` y formato legible en consola.

English:
    structlog events and stdlib ``logging`` records from the core share one
    processor chain: JSON in the daily ``<storage>/logs/escrutinio.log`` file
    and a readable console rendering.
"""

from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, List, Optional

import structlog

LOG_FILE_NAME = "escrutinio.log"


def _shared_processors() -> List[Any]:
    return [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def _formatter(renderer: Any) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )


def _resolve_level(log_level: str) -> int:
    level = logging.getLevelName(log_level.upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(log_level: str, storage_path: Path) -> structlog.BoundLogger:
    """Configura structlog sobre los handlers de ``logging``.

    Args:
        log_level: Nivel mínimo (``DEBUG``, ``INFO``...); valores
            desconocidos usan ``INFO``.
        storage_path: Raíz de almacenamiento; los logs van a ``logs/``.

    Returns:
        structlog.BoundLogger: Logger raíz ya configurado.

    English:
        Route structlog through stdlib handlers: JSON lines to a file rotated
        at midnight (30 days kept) and a console renderer on stderr. Records
        from plain ``logging.getLogger`` callers get the same level, logger
        name and timestamp fields.
    """
    log_dir = Path(storage_path) / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    level = _resolve_level(log_level)

    file_handler = TimedRotatingFileHandler(
        log_dir / LOG_FILE_NAME,
        when="midnight",
        backupCount=30,
        encoding="utf-8",
    )
    file_handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(_formatter(structlog.dev.ConsoleRenderer(colors=False)))

    logging.basicConfig(level=level, handlers=[file_handler, console_handler], force=True)

    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger("escrutinio")


def bind_context(
    logger: structlog.BoundLogger,
    category: Optional[str] = None,
    mesa_number: Optional[int] = None,
    acta_index: Optional[int] = None,
) -> structlog.BoundLogger:
    """Adjunta categoría, mesa (6 dígitos) e índice de acta al logger.

    English: Bind category, mesa (6 digits) and acta index to the logger.
    Empty values are skipped.
    """
    context: dict[str, Any] = {}
    if category:
        context["category"] = category
    if mesa_number:
        context["mesa_number"] = f"{mesa_number:06d}"
    if acta_index is not None:
        context["acta_index"] = acta_index
    return logger.bind(**context)
