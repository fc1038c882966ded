# src/smeta_calc/coefficients.py
"""
Коэффициенты накруток сметы (цепочка колонок P..AC расчётной таблицы).

Цепочка хранится как упорядоченный кортеж пар (имя, ставка). Порядок важен:
каждый следующий слой считается от результата предыдущих.
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, Iterable, Mapping, Tuple

logger = logging.getLogger(__name__)

Coefficients = Tuple[Tuple[str, float], ...]

DEFAULT_COEFFICIENTS: Coefficients = (
    ("sm", 0.06),             # P  - Работы СМ
    ("mbp", 0.08),            # Q  - Материалы МБП
    ("warranty", 0.05),       # T  - Гарантийный период
    ("work16", 0.6),          # U  - Работы 1,6
    ("work_growth", 0.1),     # V  - Работы рост
    ("mat_growth", 0.1),      # W  - Материалы рост
    ("unforeseen", 0.03),     # X  - Непредвиденные
    ("sub_ooz", 0.1),         # Y  - Субподряд ООЗ
    ("work_mat_ooz", 0.1),    # Z  - Раб+Мат ООЗ
    ("work_mat_ofz", 0.2),    # AA - Раб+Мат ОФЗ
    ("work_mat_profit", 0.1), # AB - Раб+Мат прибыль
    ("sub_profit", 0.16),     # AC - Субподряд прибыль
)

COEFFICIENT_LABELS: Dict[str, str] = {
    "sm": "СМ",
    "mbp": "МБП",
    "warranty": "Гарантия",
    "work16": "Работы 1.6",
    "work_growth": "Работы рост",
    "mat_growth": "Мат рост",
    "unforeseen": "Непредв.",
    "sub_ooz": "Суб ООЗ",
    "work_mat_ooz": "Р+М ООЗ",
    "work_mat_ofz": "Р+М ОФЗ",
    "work_mat_profit": "Р+М приб",
    "sub_profit": "Суб приб",
}

COEFFICIENTS_ENV = "SMETA_COEFFICIENTS"
DEFAULT_COEFFICIENTS_PATH = Path("data") / "coefficients.json"


def make_coefficients(overrides: Mapping[str, float] | None = None) -> Coefficients:
    """
    Собирает цепочку в каноническом порядке, подставляя значения из `overrides`.
    Неизвестные ключи игнорируются (с предупреждением).
    """
    overrides = dict(overrides or {})
    names = {name for name, _ in DEFAULT_COEFFICIENTS}
    unknown = sorted(set(overrides) - names)
    if unknown:
        logger.warning("Неизвестные коэффициенты проигнорированы: %s", unknown)
    return tuple(
        (name, float(overrides.get(name, rate)))
        for name, rate in DEFAULT_COEFFICIENTS
    )


def as_dict(coefficients: Iterable[Tuple[str, float]]) -> Dict[str, float]:
    return {name: rate for name, rate in coefficients}


def default_path() -> Path:
    env = os.environ.get(COEFFICIENTS_ENV)
    return Path(env) if env else DEFAULT_COEFFICIENTS_PATH


def load_coefficients(path: str | Path | None = None) -> Coefficients:
    """
    Читает коэффициенты из JSON ({"sm": 0.06, ...}).
    Нет файла -> значения по умолчанию; битый файл -> ошибка в лог и значения по умолчанию.
    """
    p = Path(path) if path else default_path()
    if not p.exists():
        logger.debug("Файл коэффициентов %s не найден; используем значения по умолчанию.", p)
        return DEFAULT_COEFFICIENTS
    try:
        with open(p, "r", encoding="utf-8") as f:
            raw = json.load(f)
        if not isinstance(raw, dict):
            raise ValueError("ожидался JSON-объект")
        coefficients = make_coefficients({k: float(v) for k, v in raw.items()})
    except (OSError, ValueError, TypeError) as e:
        logger.error("Ошибка загрузки коэффициентов из %s: %s", p, e)
        return DEFAULT_COEFFICIENTS
    logger.info("Коэффициенты загружены из %s", p)
    return coefficients


def save_coefficients(coefficients: Coefficients, path: str | Path | None = None) -> Path:
    p = Path(path) if path else default_path()
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as f:
        json.dump(as_dict(coefficients), f, ensure_ascii=False, indent=2)
    logger.info("Коэффициенты сохранены в %s", p)
    return p


def reset_coefficients(path: str | Path | None = None) -> Coefficients:
    save_coefficients(DEFAULT_COEFFICIENTS, path)
    return DEFAULT_COEFFICIENTS
