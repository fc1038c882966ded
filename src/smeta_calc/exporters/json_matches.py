# src/smeta_calc/exporters/json_matches.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Sequence

from ..matcher import summarize_statuses
from ..models import MatchOutcome, MatchStatus


def export_matches_json(
    outcomes: Sequence[MatchOutcome],
    path: str | Path,
    *,
    meta: Dict[str, Any] | None = None,
    indent: int = 2,
    ensure_ascii: bool = False,
) -> Path:
    """
    Сохраняет результаты сопоставления:
    {
      "meta": {...},
      "summary": {"exact": n, "good": n, ...},
      "results": [{"row": {...}, "status": "...", "selected": {...}, "candidates": [...],
                   "material_candidates": [...]}]
    }
    """
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    results = [
        {**o, "status": MatchStatus(o["status"]).value}
        for o in outcomes
    ]
    payload = {
        "meta": meta or {},
        "total": len(outcomes),
        "summary": summarize_statuses(outcomes),
        "results": results,
    }
    with open(out, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=ensure_ascii, indent=indent)
    return out
