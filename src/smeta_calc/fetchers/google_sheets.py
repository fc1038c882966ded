# src/smeta_calc/fetchers/google_sheets.py
from __future__ import annotations

import logging
import re
from pathlib import Path

import requests

from .http import download_file

logger = logging.getLogger(__name__)

EXPORT_URL = "https://docs.google.com/spreadsheets/d/{sheet_id}/export?format=xlsx"

_SHEET_ID_RE = re.compile(r"/d/([a-zA-Z0-9-_]+)")
_GID_RE = re.compile(r"[#&?]gid=(\d+)")


def parse_sheet_url(url: str) -> tuple[str, str | None]:
    """('id таблицы', 'gid листа' | None) из ссылки на Google-таблицу."""
    m = _SHEET_ID_RE.search(url or "")
    if not m:
        raise ValueError(f"Не похоже на ссылку Google Sheets: {url!r}")
    g = _GID_RE.search(url)
    return m.group(1), (g.group(1) if g else None)


def build_export_url(url: str) -> str:
    sheet_id, gid = parse_sheet_url(url)
    export = EXPORT_URL.format(sheet_id=sheet_id)
    if gid is not None:
        export += f"&gid={gid}"
    return export


def fetch_sheet(
    url: str,
    dest: str | Path,
    *,
    session: requests.Session | None = None,
    retries: int = 4,
) -> Path:
    """
    Скачивает Google-таблицу как xlsx. Таблица должна быть открыта по ссылке,
    иначе Google отдаёт страницу входа и загрузка завершается RuntimeError.
    """
    export_url = build_export_url(url)
    dest = Path(dest)
    logger.info("Загрузка Google-таблицы: %s", export_url)
    download_file(export_url, str(dest), retries=retries, session=session, min_bytes=64)
    return dest
