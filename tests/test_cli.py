import json

from openpyxl import Workbook
from typer.testing import CliRunner

from builders import customer, material, work
from smeta_calc.cli import app
from smeta_calc.exporters.json_estimate import export_estimate_json, load_estimate_json

runner = CliRunner()


def _estimate_json(path):
    rows = [customer(0, name="Стены"), work(0, price=100), material(0, coef=2, price=50)]
    return export_estimate_json(rows, path)


def test_calc_prints_totals_and_exports(tmp_path):
    src = _estimate_json(tmp_path / "smeta.json")
    out = tmp_path / "calc.xlsx"
    result = runner.invoke(app, ["calc", "--estimate", str(src), "--out", str(out), "--json", str(tmp_path / "calc.json")])

    assert result.exit_code == 0, result.output
    assert "ИТОГО" in result.output
    assert out.exists()
    assert (tmp_path / "calc.json").exists()


def test_set_volume_cascades(tmp_path):
    src = _estimate_json(tmp_path / "smeta.json")
    out = tmp_path / "after.json"
    result = runner.invoke(app, ["set-volume", "--estimate", str(src), "--row", "1", "--value", "10", "--out", str(out)])

    assert result.exit_code == 0, result.output
    assert [r["volume"] for r in load_estimate_json(out)] == [10, 10, 20]


def test_set_volume_row_out_of_range(tmp_path):
    src = _estimate_json(tmp_path / "smeta.json")
    result = runner.invoke(app, ["set-volume", "--estimate", str(src), "--row", "9", "--value", "1"])
    assert result.exit_code != 0


def test_match_writes_results_and_estimate(tmp_path):
    catalog = tmp_path / "catalog.json"
    catalog.write_text(json.dumps({
        "rates": [{"id": "r1", "code": "01", "name": "Кладка кирпичная", "unit": "м3",
                   "base_price": 1500, "category": "Стены", "subcategory": "Кладка"}],
        "rate_materials": [{"rate_id": "r1", "name": "Кирпич", "unit": "шт", "consumption": 400, "unit_price": 12}],
    }, ensure_ascii=False), encoding="utf-8")

    rows_file = tmp_path / "import.xlsx"
    wb = Workbook()
    ws = wb.active
    ws.append(["Наименование работ", "Ед. изм.", "Объем", "Категория", "Подкатегория"])
    ws.append(["Кладка кирпичная", "м3", 10, "Стены", "Кладка"])
    ws.append(["Монтаж окон", "шт", 4, "", ""])
    wb.save(rows_file)

    out = tmp_path / "matches.json"
    estimate_out = tmp_path / "estimate.json"
    result = runner.invoke(app, [
        "match", "--rows", str(rows_file), "--catalog", str(catalog),
        "--out", str(out), "--estimate-out", str(estimate_out),
    ])

    assert result.exit_code == 0, result.output
    payload = json.loads(out.read_text(encoding="utf-8"))
    assert payload["summary"]["exact"] == 1
    assert payload["summary"]["validation_error"] == 1

    estimate = load_estimate_json(estimate_out)
    assert [r["volume"] for r in estimate] == [10, 10, 4000]


def test_coefficients_reset(tmp_path):
    path = tmp_path / "coefficients.json"
    result = runner.invoke(app, ["coefficients", "--path", str(path), "--reset"])

    assert result.exit_code == 0, result.output
    assert path.exists()
    assert "work_mat_profit" in result.output


def test_fetch_sheet_rejects_bad_url(tmp_path):
    result = runner.invoke(app, ["fetch-sheet", "--url", "https://example.com", "--out", str(tmp_path / "x.xlsx")])
    assert result.exit_code == 2


def test_search_lists_rates_and_materials(tmp_path):
    catalog = tmp_path / "catalog.json"
    catalog.write_text(json.dumps({
        "rates": [{"id": "r1", "code": "01", "name": "Кладка кирпичная", "unit": "м3",
                   "base_price": 1500, "category": "Стены", "subcategory": "Кладка"}],
        "materials": [{"id": "m1", "code": "КР-150", "name": "Кирпич керамический", "unit": "шт", "price": 14}],
    }, ensure_ascii=False), encoding="utf-8")

    result = runner.invoke(app, ["search", "КР-150", "--catalog", str(catalog)])
    assert result.exit_code == 0, result.output
    assert "материал" in result.output
    assert "Кирпич керамический" in result.output

    result = runner.invoke(app, ["search", "Вентиляция", "--catalog", str(catalog), "--min-score", "0.99"])
    assert result.exit_code == 0, result.output
    assert "Ничего не найдено" in result.output


def test_calc_reads_csv_with_title_line(tmp_path):
    src = tmp_path / "smeta.csv"
    src.write_text(
        "Тендер: склад\n"
        "№;Заказчик;Тип материала;Наименование работ;Ед. изм.;Объем;Коэф.;Цена работы;Цена мат-ла;Доставка;Итого\n"
        "1;Заказчик;;Полы;м2;20;;;;;\n"
        "1.1;раб;;Стяжка;м2;20;;300;;;6000\n",
        encoding="utf-8",
    )
    result = runner.invoke(app, ["calc", "--estimate", str(src)])
    assert result.exit_code == 0, result.output
    assert "Полы" in result.output
