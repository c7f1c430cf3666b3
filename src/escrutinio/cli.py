"""Interfaz de línea de comandos del motor de escrutinio.

Operator command line interface. Reference data loading is external, so the
CLI starts with an empty catalog unless a caller injects a context through
``ctx.obj``.
"""

import asyncio
import json
import logging
from typing import Optional

import typer

from .config import load_settings
from .context import AppContext, build_context
from .core.report import build_acta_report
from .logging import bind_context, setup_logging

logger = logging.getLogger(__name__)

app = typer.Typer(help="Escrutinio Engine CLI")


def _context(ctx: typer.Context) -> AppContext:
    return ctx.obj


@app.callback()
def main(ctx: typer.Context) -> None:
    """Interfaz de línea de comandos del escrutinio.

    English: Escrutinio command line interface.
    """
    if isinstance(ctx.obj, AppContext):
        return
    try:
        settings = load_settings()
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2) from exc
    log = setup_logging(settings.LOG_LEVEL, settings.STORAGE_PATH)
    ctx.obj = build_context(settings)
    bind_context(log, category=settings.DEFAULT_CATEGORY).info(
        "cli_started", storage_backend=settings.STORAGE_BACKEND, storage_path=str(settings.STORAGE_PATH)
    )
    ctx.call_on_close(ctx.obj.close)


@app.command()
def categories(ctx: typer.Context) -> None:
    """Lista las categorías y marca la activa.

    English: List categories and flag the active one.
    """
    context = _context(ctx)
    active = asyncio.run(context.repository.get_active_category())
    for category in context.categories:
        marker = "*" if category.key == active else " "
        typer.echo(f"{marker} {category.category_id} {category.key:<18} {category.label}")


@app.command()
def actas(
    ctx: typer.Context,
    category: Optional[str] = typer.Option(None, "--category", "-c", help="Categoría electoral"),
) -> None:
    """Lista las actas de una categoría.

    English: List the actas of a category.
    """
    context = _context(ctx)
    if category is not None and category not in context.categories:
        typer.echo(f"Categoría electoral desconocida: {category}", err=True)
        raise typer.Exit(code=1)
    summaries = asyncio.run(context.navigator.list_actas(category))
    for summary in summaries:
        marker = "*" if summary.is_active else " "
        status = "FINALIZADA" if summary.is_form_finalized else ("EN CURSO" if summary.is_mesa_data_saved else "-")
        typer.echo(
            f"{marker} [{summary.index}] mesa={summary.mesa_number:06d} acta={summary.acta_number or '-'} "
            f"cedulas={summary.entries}/{summary.total_electores} {status}"
        )


@app.command()
def report(
    ctx: typer.Context,
    category: str = typer.Option(..., "--category", "-c", help="Categoría electoral"),
    index: Optional[int] = typer.Option(None, "--index", "-i", help="Índice del acta"),
) -> None:
    """Imprime el reporte JSON de un acta.

    English: Print the JSON report of an acta.
    """
    context = _context(ctx)
    if category not in context.categories:
        typer.echo(f"Categoría electoral desconocida: {category}", err=True)
        raise typer.Exit(code=1)

    async def _build() -> Optional[dict]:
        machine = await context.open_acta(category, index)
        actas_in_category = await context.repository.get_all_actas(category)
        if not 0 <= machine.index < len(actas_in_category):
            return None
        keys = await machine.organization_keys()
        return build_acta_report(
            machine.acta,
            context.categories.get(category),
            context.reference.organizations(),
            organization_keys=keys,
            now=context.clock(),
        )

    payload = asyncio.run(_build())
    if payload is None:
        typer.echo(f"No existe el acta {index} en {category}", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))


@app.command("partial-recount")
def partial_recount(
    ctx: typer.Context,
    circunscripcion: str = typer.Argument(..., help="Circunscripción electoral"),
    enabled: bool = typer.Option(True, "--on/--off", help="Activa o desactiva el recuento parcial"),
) -> None:
    """Activa o desactiva el recuento parcial de una circunscripción.

    English: Toggle partial recount mode for a circunscripción.
    """
    context = _context(ctx)
    asyncio.run(context.repository.save_is_partial_recount(circunscripcion, enabled))
    logger.info("partial_recount_toggled circunscripcion=%s enabled=%s", circunscripcion, enabled)
    typer.echo(f"Recuento parcial {'activado' if enabled else 'desactivado'} para {circunscripcion}")


@app.command()
def clear(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", help="Confirma el borrado de todos los datos"),
) -> None:
    """Borra todas las actas y configuraciones guardadas.

    English: Delete every saved acta and setting.
    """
    if not yes:
        typer.echo("Use --yes para confirmar el borrado.", err=True)
        raise typer.Exit(code=1)
    context = _context(ctx)
    asyncio.run(context.repository.clear_all())
    typer.echo("Datos electorales eliminados.")


if __name__ == "__main__":
    app()
