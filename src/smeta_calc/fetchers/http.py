# src/smeta_calc/fetchers/http.py
from __future__ import annotations

import logging
import os
import random
import tempfile
import time

import requests

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": ("Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
                   "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"),
    "Accept": "*/*",
    "Connection": "keep-alive",
}


def make_session(headers: dict | None = None) -> requests.Session:
    s = requests.Session()
    s.headers.update(DEFAULT_HEADERS)
    if headers:
        s.headers.update(headers)
    return s


def download_file(url: str, dest_path: str, timeout: float = 120.0,
                  retries: int = 4, backoff: float = 1.6, min_bytes: int = 1024,
                  headers: dict | None = None,
                  session: requests.Session | None = None,
                  sleep=time.sleep) -> None:
    """
    Скачивает файл с повторами и экспоненциальной паузой.
    HTML вместо файла (страница входа, нет доступа) считается ошибкой.
    Запись через временный файл + os.replace; после последней попытки RuntimeError.
    """
    last: Exception | None = None
    os.makedirs(os.path.dirname(dest_path) or ".", exist_ok=True)
    sess = session or make_session(headers)

    for attempt in range(retries):
        tmp_path: str | None = None
        try:
            with sess.get(url, stream=True, allow_redirects=True, timeout=timeout) as r:
                r.raise_for_status()
                ct = (r.headers.get("Content-Type") or "").lower()
                if "text/html" in ct:
                    raise RuntimeError(
                        f"Вместо файла получен HTML (status {r.status_code}); проверьте доступ по ссылке"
                    )

                with tempfile.NamedTemporaryFile("wb", delete=False,
                                                 dir=os.path.dirname(dest_path) or ".") as tmp:
                    tmp_path = tmp.name
                    total = 0
                    for chunk in r.iter_content(262_144):
                        if not chunk:
                            continue
                        tmp.write(chunk)
                        total += len(chunk)

            if total < min_bytes:
                raise RuntimeError(f"Файл слишком мал ({total} байт)")

            os.replace(tmp_path, dest_path)
            logger.info("Скачано %s -> %s (%d байт)", url, dest_path, total)
            return

        except (requests.RequestException, RuntimeError, OSError) as e:
            last = e
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            if attempt + 1 < retries:
                sleep_s = (backoff ** attempt) + random.uniform(0, 0.5)
                logger.warning("Попытка %d/%d не удалась: %s; повтор через %.1f с",
                               attempt + 1, retries, e, sleep_s)
                sleep(sleep_s)

    raise RuntimeError(f"Не удалось скачать {url}: {last}")
