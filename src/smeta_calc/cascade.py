# src/smeta_calc/cascade.py
from __future__ import annotations

import logging
import uuid
from typing import Iterator, List, Optional, Sequence, Tuple

from .models import (
    EstimateRow,
    RateMaterial,
    Rate,
    RowType,
    WORK_TYPES,
    MATERIAL_TYPES,
    MATERIAL_PRIMARY,
)
from .utils.utils_number import to_number

logger = logging.getLogger(__name__)

PRICE_FIELDS = ("mat_price_no_delivery", "delivery")
DEFAULT_UNIT = "м3"


# ---------- helpers ----------

def row_type_of(row: EstimateRow) -> Optional[RowType]:
    """Тип строки как RowType (строки из JSON/Excel приходят обычными str)."""
    try:
        return RowType(row.get("row_type"))
    except ValueError:
        return None


def is_customer(row: EstimateRow) -> bool:
    return row_type_of(row) is RowType.CUSTOMER


def is_work(row: EstimateRow) -> bool:
    return row_type_of(row) in WORK_TYPES


def is_material(row: EstimateRow) -> bool:
    return row_type_of(row) in MATERIAL_TYPES


def material_coef(row: EstimateRow) -> float:
    # пустой/нулевой коэффициент читается как 1
    return to_number(row.get("material_coef")) or 1.0


def index_of(rows: Sequence[EstimateRow], row_id: str) -> Optional[int]:
    for i, r in enumerate(rows):
        if r["id"] == row_id:
            return i
    return None


def find_customer_index(rows: Sequence[EstimateRow], index: int) -> Optional[int]:
    """Индекс ближайшей строки 'Заказчик' на позиции index или выше."""
    for i in range(min(index, len(rows) - 1), -1, -1):
        if is_customer(rows[i]):
            return i
    return None


def iter_groups(rows: Sequence[EstimateRow]) -> Iterator[Tuple[Optional[int], List[int]]]:
    """
    Разбивает список на группы: (индекс 'Заказчик', индексы подчинённых строк).
    Строки до первого 'Заказчик' отдаются группой с индексом None.
    """
    current: Optional[int] = None
    members: List[int] = []
    for i, r in enumerate(rows):
        if is_customer(r):
            if current is not None or members:
                yield current, members
            current, members = i, []
            continue
        members.append(i)
    if current is not None or members:
        yield current, members


def _customer_volume_above(rows: Sequence[EstimateRow], start: int) -> float:
    """Объём ближайшей строки 'Заказчик' начиная с позиции start вверх (0, если нет)."""
    if start < 0:
        return 0.0
    idx = find_customer_index(rows, start)
    if idx is None:
        return 0.0
    return to_number(rows[idx].get("volume"))


def new_row(customer_volume: float = 0.0, **fields) -> EstimateRow:
    """Пустая строка 'раб' с объёмом группы."""
    row = EstimateRow(
        id=uuid.uuid4().hex,
        row_type=RowType.WORK,
        material_type="",
        work_name="",
        unit=DEFAULT_UNIT,
        volume=customer_volume,
        work_volume=customer_volume,
        material_coef=1.0,
        work_price=0.0,
        mat_price_no_delivery=0.0,
        delivery=0.0,
        mat_price_with_delivery=0.0,
    )
    row.update(fields)  # type: ignore[typeddict-item]
    return row


# ---------- CRUD ----------

def add_row(rows: Sequence[EstimateRow]) -> List[EstimateRow]:
    """Добавляет строку в конец; объём берётся из последней строки 'Заказчик'."""
    volume = _customer_volume_above(rows, len(rows) - 1)
    logger.debug("Новая строка в конце списка, объём группы=%s", volume)
    return [*rows, new_row(volume)]


def insert_row_after(rows: Sequence[EstimateRow], after_id: str) -> List[EstimateRow]:
    after = index_of(rows, after_id)
    if after is None:
        logger.debug("insert_row_after: строка %r не найдена", after_id)
        return list(rows)
    volume = _customer_volume_above(rows, after)
    out = list(rows)
    out.insert(after + 1, new_row(volume))
    return out


def delete_row(rows: Sequence[EstimateRow], row_id: str) -> List[EstimateRow]:
    # без каскадной очистки: материалы без работы просто остаются как есть
    return [r for r in rows if r["id"] != row_id]


def toggle_collapse(rows: Sequence[EstimateRow], row_id: str) -> List[EstimateRow]:
    return [
        {**r, "is_collapsed": not r.get("is_collapsed", False)} if r["id"] == row_id else r
        for r in rows
    ]


# ---------- каскадное обновление ----------

def update_field(
    rows: Sequence[EstimateRow],
    row_id: str,
    field: str,
    value: object,
) -> List[EstimateRow]:
    """
    Единая точка изменения поля строки. Чистая функция: возвращает новый список,
    исходные строки не меняются.

    Правила:
      - mat_price_no_delivery/delivery -> пересчёт mat_price_with_delivery;
      - volume у 'Заказчик' -> каскад до следующего 'Заказчик'
        (работы = V, материалы = объём ближайшей работы выше × коэф.);
      - volume у работы -> материалы ниже (до след. работы/'Заказчик') = V × коэф.;
      - material_coef у материала -> объём = объём ближайшей работы выше × коэф.;
      - row_type = 'Заказчик' -> предыдущая группа сворачивается;
      - row_type вне закрытого набора -> строка не меняется, предупреждение в лог.
    Каскад не рекурсивный: зависимые строки пересчитываются один раз, по порядку.
    """
    idx = index_of(rows, row_id)
    if idx is None:
        logger.debug("update_field: строка %r не найдена", row_id)
        return list(rows)

    out: List[EstimateRow] = list(rows)
    target: EstimateRow = {**out[idx], field: value}  # type: ignore[misc]

    if field == "row_type":
        try:
            target["row_type"] = RowType(value)
        except ValueError:
            logger.warning("update_field: неизвестный тип строки %r; строка %r не изменена", value, row_id)
            return out

    if field == "volume" and not is_customer(target):
        target["work_volume"] = value  # type: ignore[typeddict-item]

    if field in PRICE_FIELDS:
        price = to_number(target.get("mat_price_no_delivery"))
        delivery = to_number(target.get("delivery"))
        target["mat_price_with_delivery"] = price + delivery

    out[idx] = target

    if field == "row_type" and is_customer(target):
        _collapse_previous_customer(out, idx)
    elif field == "material_coef" and is_material(target):
        _recalc_material_from_work(out, idx)
    elif field == "volume" and is_customer(target):
        _cascade_customer_volume(out, idx)
    elif field == "volume" and is_work(target):
        _cascade_work_volume(out, idx)

    return out


def _collapse_previous_customer(rows: List[EstimateRow], idx: int) -> None:
    for i in range(idx - 1, -1, -1):
        if is_customer(rows[i]):
            rows[i] = {**rows[i], "is_collapsed": True}
            logger.debug("Свернута предыдущая группа %r", rows[i].get("work_name"))
            return


def _recalc_material_from_work(rows: List[EstimateRow], idx: int) -> None:
    mat = rows[idx]
    for i in range(idx - 1, -1, -1):
        r = rows[i]
        if is_work(r):
            new_volume = to_number(r.get("volume")) * material_coef(mat)
            logger.debug(
                "Объём материала %r: %s × %s = %s",
                mat.get("work_name"), r.get("volume"), mat.get("material_coef"), new_volume,
            )
            rows[idx] = {**mat, "volume": new_volume, "work_volume": new_volume}
            return
        if is_customer(r):
            return


def _cascade_customer_volume(rows: List[EstimateRow], idx: int) -> None:
    customer_volume = rows[idx].get("volume")
    logger.debug("Каскад объёма от 'Заказчик' %r: %s", rows[idx].get("work_name"), customer_volume)

    for i in range(idx + 1, len(rows)):
        r = rows[i]
        if is_customer(r):
            break
        if is_work(r):
            rows[i] = {**r, "volume": customer_volume, "work_volume": customer_volume}  # type: ignore[misc]
        elif is_material(r):
            base = customer_volume
            for j in range(i - 1, idx, -1):
                if is_work(rows[j]):
                    base = rows[j].get("volume") or customer_volume
                    break
            new_volume = to_number(base) * material_coef(r)
            rows[i] = {**r, "volume": new_volume, "work_volume": new_volume}


def _cascade_work_volume(rows: List[EstimateRow], idx: int) -> None:
    work_volume = to_number(rows[idx].get("volume"))
    for i in range(idx + 1, len(rows)):
        r = rows[i]
        if is_customer(r) or is_work(r):
            break
        if is_material(r):
            new_volume = work_volume * material_coef(r)
            rows[i] = {**r, "volume": new_volume, "work_volume": new_volume}


# ---------- подстановка расценок и материалов ----------

def apply_rate(
    rows: Sequence[EstimateRow],
    row_id: str,
    rate: Rate,
    materials: Sequence[RateMaterial] = (),
) -> List[EstimateRow]:
    """
    Превращает строку в 'раб' по расценке (наименование, ед., базовая цена,
    объём группы) и вставляет после неё строки материалов расценки
    с коэффициентом расхода.
    """
    idx = index_of(rows, row_id)
    if idx is None:
        logger.debug("apply_rate: строка %r не найдена", row_id)
        return list(rows)

    volume = _customer_volume_above(rows, idx - 1)
    out = list(rows)
    out[idx] = {
        **out[idx],
        "work_name": rate["name"],
        "unit": rate.get("unit", ""),
        "work_price": to_number(rate.get("base_price")),
        "row_type": RowType.WORK,
        "volume": volume,
        "work_volume": volume,
    }

    material_rows: List[EstimateRow] = []
    for m in materials:
        coef = to_number(m.get("consumption")) or 1.0
        price = to_number(m.get("unit_price"))
        mat_volume = volume * coef
        material_rows.append(new_row(
            mat_volume,
            row_type=RowType.MATERIAL,
            material_type=MATERIAL_PRIMARY,
            work_name=m["name"],
            unit=m.get("unit", ""),
            material_coef=coef,
            mat_price_no_delivery=price,
            mat_price_with_delivery=price,
        ))
    out[idx + 1:idx + 1] = material_rows

    logger.info(
        "Расценка %r применена к строке %s; материалов добавлено: %d",
        rate["name"], idx, len(material_rows),
    )
    return out


def apply_material(
    rows: Sequence[EstimateRow],
    row_id: str,
    name: str,
    unit: str,
    price: float,
) -> List[EstimateRow]:
    """
    Превращает строку в основной материал. Объём = объём ближайшей работы выше
    (или 'Заказчик', если он встретился раньше) × коэф. расхода строки.
    """
    idx = index_of(rows, row_id)
    if idx is None:
        logger.debug("apply_material: строка %r не найдена", row_id)
        return list(rows)

    base = 0.0
    for i in range(idx - 1, -1, -1):
        if is_work(rows[i]) or is_customer(rows[i]):
            base = to_number(rows[i].get("volume"))
            break

    row = rows[idx]
    volume = base * material_coef(row)
    price = to_number(price)
    out = list(rows)
    out[idx] = {
        **row,
        "work_name": name,
        "unit": unit,
        "mat_price_no_delivery": price,
        "mat_price_with_delivery": price,
        "row_type": RowType.MATERIAL,
        "material_type": MATERIAL_PRIMARY,
        "volume": volume,
        "work_volume": volume,
    }
    return out
