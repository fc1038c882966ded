# src/smeta_calc/cli.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer

from .adapters.catalog import load_catalog
from .adapters.estimate_sheet import load_estimate_rows
from .adapters.import_rows import load_import_rows
from .cascade import update_field
from .coefficients import (
    COEFFICIENT_LABELS,
    load_coefficients,
    reset_coefficients,
    default_path,
)
from .costing import calculate_totals, group_summaries
from .exceptions import EstimateFormatError
from .exporters.excel import export_estimate_excel
from .exporters.json_estimate import export_estimate_json, load_estimate_json
from .exporters.json_matches import export_matches_json
from .fetchers.google_sheets import fetch_sheet
from .matcher import (
    DEFAULT_AUTO_MATCH_THRESHOLD,
    MIN_NAME_SIMILARITY,
    match_batch,
    summarize_statuses,
    transfer_to_estimate,
)
from .models import EstimateRow
from .search import DEFAULT_MAX_RESULTS, MANUAL_MIN_SCORE, manual_search
from .utils.utils_number import format_currency_with_symbol

app = typer.Typer(no_args_is_help=True, add_completion=False, help="""
Расчёт сметы: каскад объёмов, накрутки, сопоставление с расценками.
""")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Подробный лог (DEBUG)."),
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )


# -----------------------------------------
# Helpers
# -----------------------------------------
def _load_rows(path: Path) -> List[EstimateRow]:
    try:
        if path.suffix.lower() == ".json":
            return load_estimate_json(path)
        return load_estimate_rows(path)
    except EstimateFormatError as e:
        raise typer.BadParameter(f"{path}: {e}") from e


def _save_rows(rows: List[EstimateRow], out: Path, coefficients) -> None:
    if out.suffix.lower() == ".json":
        export_estimate_json(rows, out, coefficients)
    else:
        export_estimate_excel(rows, out, coefficients)
    typer.secho(f">> OK! Смета сохранена в {out}", fg=typer.colors.GREEN)


def _print_totals(rows: List[EstimateRow], coefficients) -> None:
    for g in group_summaries(rows, coefficients):
        name = g["customer_name"] or "(без группы)"
        typer.echo(f"  {name}: {format_currency_with_symbol(g['customer_price'])}")
    totals = calculate_totals(rows, coefficients)
    typer.echo(f"Материалы в КП: {format_currency_with_symbol(totals['total_materials'])}")
    typer.echo(f"Работы в КП:    {format_currency_with_symbol(totals['total_works'])}")
    typer.secho(f"ИТОГО:          {format_currency_with_symbol(totals['grand_total'])}", bold=True)


# =====================================================================
# СМЕТА
# =====================================================================

@app.command("calc")
def calc(
    estimate: Path = typer.Option(..., exists=True, readable=True, help="Смета (xlsx/csv/json)."),
    coef: Optional[Path] = typer.Option(None, help="JSON с коэффициентами накруток."),
    out: Optional[Path] = typer.Option(None, help="Excel с расчётом (листы 'Смета' и 'Итоги')."),
    json_out: Optional[Path] = typer.Option(None, "--json", help="JSON с расчётом."),
):
    """
    Считает смету: цена для заказчика по группам и общие итоги.
    """
    typer.secho(">> Читаем смету…", fg=typer.colors.CYAN)
    rows = _load_rows(estimate)
    coefficients = load_coefficients(coef)

    typer.secho(f">> Строк: {len(rows)}", fg=typer.colors.CYAN)
    _print_totals(rows, coefficients)

    if out:
        export_estimate_excel(rows, out, coefficients)
        typer.secho(f">> OK! Excel сохранён в {out}", fg=typer.colors.GREEN)
    if json_out:
        export_estimate_json(rows, json_out, coefficients, meta={"estimate": str(estimate)})
        typer.secho(f">> OK! JSON сохранён в {json_out}", fg=typer.colors.GREEN)


@app.command("set-volume")
def set_volume(
    estimate: Path = typer.Option(..., exists=True, readable=True, help="Смета (xlsx/csv/json)."),
    row: int = typer.Option(..., min=1, help="Номер строки (с 1)."),
    value: float = typer.Option(..., help="Новый объём."),
    coef: Optional[Path] = typer.Option(None, help="JSON с коэффициентами накруток."),
    out: Path = typer.Option(Path("output/smeta.xlsx"), help="Куда сохранить (xlsx или json)."),
):
    """
    Меняет объём строки и пересчитывает зависимые строки группы.
    """
    rows = _load_rows(estimate)
    if row > len(rows):
        raise typer.BadParameter(f"В смете {len(rows)} строк, строки {row} нет.")

    target = rows[row - 1]
    rows = update_field(rows, target["id"], "volume", value)
    typer.secho(f">> Объём строки {row} ({target.get('work_name')!r}) = {value}", fg=typer.colors.CYAN)

    coefficients = load_coefficients(coef)
    _print_totals(rows, coefficients)
    _save_rows(rows, out, coefficients)


# =====================================================================
# СОПОСТАВЛЕНИЕ
# =====================================================================

@app.command("match")
def match(
    rows_file: Path = typer.Option(..., "--rows", exists=True, readable=True, help="Файл импорта (xlsx/csv)."),
    catalog_file: Path = typer.Option(..., "--catalog", exists=True, readable=True, help="Справочник расценок (xlsx/json)."),
    threshold: float = typer.Option(DEFAULT_AUTO_MATCH_THRESHOLD, min=0.0, max=1.0, help="Порог автоматического выбора."),
    min_score: float = typer.Option(MIN_NAME_SIMILARITY, min=0.0, max=1.0, help="Минимальная схожесть наименований."),
    out: Path = typer.Option(Path("output/matches.json"), help="JSON с результатами."),
    estimate_out: Optional[Path] = typer.Option(None, help="Перенести подтверждённые строки в смету (xlsx/json)."),
):
    """
    Сопоставляет строки импорта с расценками справочника.
    """
    try:
        typer.secho(">> Читаем справочник…", fg=typer.colors.CYAN)
        catalog = load_catalog(catalog_file)
        typer.secho(">> Читаем строки импорта…", fg=typer.colors.CYAN)
        rows = load_import_rows(rows_file)
    except EstimateFormatError as e:
        raise typer.BadParameter(str(e)) from e

    with typer.progressbar(length=len(rows), label="Сопоставление") as bar:
        outcomes = match_batch(
            rows, catalog,
            auto_match_threshold=threshold,
            min_score=min_score,
            progress=lambda done, total: bar.update(1),
        )

    counts = summarize_statuses(outcomes)
    for status, n in counts.items():
        typer.echo(f"  {status}: {n}")

    export_matches_json(outcomes, out, meta={
        "rows": str(rows_file),
        "catalog": str(catalog_file),
        "threshold": threshold,
        "min_score": min_score,
    })
    typer.secho(f">> OK! JSON сохранён в {out}", fg=typer.colors.GREEN)

    if estimate_out:
        estimate, skipped = transfer_to_estimate(outcomes, catalog)
        if skipped:
            typer.secho(f">> Не перенесено (нужна ручная проверка): {len(skipped)}", fg=typer.colors.YELLOW)
        _save_rows(estimate, estimate_out, load_coefficients())


@app.command("search")
def search(
    query: str = typer.Argument(..., help="Наименование или код/артикул."),
    catalog_file: Path = typer.Option(..., "--catalog", exists=True, readable=True, help="Справочник расценок (xlsx/json)."),
    category: Optional[str] = typer.Option(None, help="Только эта категория."),
    subcategory: Optional[str] = typer.Option(None, help="Только эта подкатегория (только расценки)."),
    limit: int = typer.Option(DEFAULT_MAX_RESULTS, min=1, help="Сколько результатов показать."),
    min_score: float = typer.Option(MANUAL_MIN_SCORE, min=0.0, max=1.0, help="Минимальная оценка."),
):
    """
    Ручной поиск по расценкам и материалам справочника.
    """
    try:
        catalog = load_catalog(catalog_file)
    except EstimateFormatError as e:
        raise typer.BadParameter(str(e)) from e

    hits = manual_search(
        query, catalog,
        category=category, subcategory=subcategory,
        max_results=limit, min_score=min_score,
    )
    if not hits:
        typer.secho(">> Ничего не найдено.", fg=typer.colors.YELLOW)
        return
    kinds = {"rate": "расценка", "material": "материал"}
    for h in hits:
        typer.echo(f"  {h['score'] * 100:3.0f}%  {kinds.get(h['kind'], h['kind']):<9} {h['code']:<10} {h['name']} ({h['unit']})")


# =====================================================================
# ЗАГРУЗКА И НАСТРОЙКИ
# =====================================================================

@app.command("fetch-sheet")
def fetch_sheet_cmd(
    url: str = typer.Option(..., help="Ссылка на Google-таблицу."),
    out: Path = typer.Option(Path("data/google_sheet.xlsx"), help="Куда сохранить xlsx."),
):
    """
    Скачивает Google-таблицу (открытую по ссылке) в xlsx.
    """
    try:
        path = fetch_sheet(url, out)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e
    except RuntimeError as e:
        typer.secho(f"Загрузка не удалась: {e}", err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.secho(f">> OK! Таблица сохранена в {path}", fg=typer.colors.GREEN)


@app.command("coefficients")
def coefficients_cmd(
    path: Optional[Path] = typer.Option(None, help="JSON с коэффициентами (по умолчанию $SMETA_COEFFICIENTS или data/coefficients.json)."),
    reset: bool = typer.Option(False, "--reset", help="Записать значения по умолчанию."),
):
    """
    Показывает (или сбрасывает) коэффициенты накруток.
    """
    if reset:
        coefficients = reset_coefficients(path)
        typer.secho(f">> Коэффициенты сброшены: {path or default_path()}", fg=typer.colors.GREEN)
    else:
        coefficients = load_coefficients(path)
    for name, rate in coefficients:
        typer.echo(f"  {COEFFICIENT_LABELS.get(name, name):<12} {name:<16} {rate:g}")


if __name__ == "__main__":
    app(prog_name="smeta")
