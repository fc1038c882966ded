# src/smeta_calc/catalog.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .models import Material, Rate, RateMaterial, Unit, RateDict
from .units import resolve_unit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateCatalog:
    """
    Снимок справочников (расценки, материалы расценок, единицы, материалы)
    только для чтения. Передаётся в сопоставление и перенос в смету явно,
    вместо глобальных кэшей.
    """
    rates: tuple = ()
    rate_materials: tuple = ()
    units: tuple = ()
    materials: tuple = ()
    _by_id: Dict[str, Rate] = field(default_factory=dict, init=False, repr=False, compare=False)
    _materials_by_id: Dict[str, Material] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        by_id: RateDict = {}
        dup = 0
        for r in self.rates:
            if r["id"] in by_id:
                dup += 1
            by_id[r["id"]] = r
        if dup:
            logger.warning("Справочник расценок: %d повторяющихся id; оставляем последний.", dup)
        object.__setattr__(self, "_by_id", by_id)
        object.__setattr__(self, "_materials_by_id", {m["id"]: m for m in self.materials})

    @classmethod
    def build(
        cls,
        rates: Iterable[Rate],
        rate_materials: Iterable[RateMaterial] = (),
        units: Iterable[Unit] = (),
        materials: Iterable[Material] = (),
    ) -> "RateCatalog":
        return cls(
            rates=tuple(rates),
            rate_materials=tuple(rate_materials),
            units=tuple(units),
            materials=tuple(materials),
        )

    def active_rates(self) -> List[Rate]:
        return [r for r in self.rates if r.get("is_active", True)]

    def active_materials(self) -> List[Material]:
        return [m for m in self.materials if m.get("is_active", True)]

    def get_rate(self, rate_id: str) -> Optional[Rate]:
        return self._by_id.get(rate_id)

    def get_material(self, material_id: str) -> Optional[Material]:
        return self._materials_by_id.get(material_id)

    def materials_for(self, rate_id: str) -> List[RateMaterial]:
        return [m for m in self.rate_materials if m["rate_id"] == rate_id]

    def resolve_unit(self, text: Optional[str]) -> Optional[Unit]:
        return resolve_unit(text, self.units)

    def __len__(self) -> int:
        return len(self.rates)
