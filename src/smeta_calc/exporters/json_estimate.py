# src/smeta_calc/exporters/json_estimate.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Sequence

from ..coefficients import Coefficients, DEFAULT_COEFFICIENTS, as_dict
from ..costing import calculate_row, calculate_totals, group_summaries
from ..exceptions import EstimateFormatError
from ..models import EstimateRow, RowType


def _row_payload(row: EstimateRow, coefficients: Coefficients) -> Dict[str, Any]:
    out: Dict[str, Any] = dict(row)
    out["row_type"] = RowType(row["row_type"]).value
    out["calculation"] = calculate_row(row, coefficients)
    return out


def export_estimate_json(
    rows: Sequence[EstimateRow],
    path: str | Path,
    coefficients: Coefficients = DEFAULT_COEFFICIENTS,
    *,
    meta: Dict[str, Any] | None = None,
    indent: int = 2,
    ensure_ascii: bool = False,
) -> Path:
    """
    Сохраняет JSON:
    {
      "meta": {..., "coefficients": {...}},
      "totals": {...},
      "groups": [...],
      "rows": [{..., "calculation": {...}}]
    }
    """
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "meta": {**(meta or {}), "coefficients": as_dict(coefficients)},
        "totals": calculate_totals(rows, coefficients),
        "groups": group_summaries(rows, coefficients),
        "rows": [_row_payload(r, coefficients) for r in rows],
    }
    with open(out, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=ensure_ascii, indent=indent)
    return out


def load_estimate_json(path: str | Path) -> List[EstimateRow]:
    """Строки сметы из JSON, сохранённого export_estimate_json (расчёт отбрасывается)."""
    with open(path, "r", encoding="utf-8") as f:
        payload = json.load(f)
    if not isinstance(payload, dict) or not isinstance(payload.get("rows"), list):
        raise EstimateFormatError(f"В {Path(path).name} нет списка 'rows'")
    rows: List[EstimateRow] = []
    for r in payload["rows"]:
        row = {k: v for k, v in r.items() if k != "calculation"}
        row["row_type"] = RowType(row["row_type"])
        rows.append(row)  # type: ignore[arg-type]
    return rows
