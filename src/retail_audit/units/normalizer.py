# src/retail_audit/units/normalizer.py
from __future__ import annotations

from enum import Enum
from typing import Dict, Optional, Tuple


class Dimension(str, Enum):
    WEIGHT = "weight"
    VOLUME = "volume"
    LENGTH = "length"
    COUNT = "count"


UNIT_DIMENSIONS: Dict[Dimension, frozenset] = {
    Dimension.WEIGHT: frozenset({"mg", "g", "kg", "tonne", "lbs", "lb", "oz", "ounce"}),
    Dimension.VOLUME: frozenset({"ml", "l", "liter", "litre", "gallon", "pint", "cc"}),
    Dimension.LENGTH: frozenset({"mm", "cm", "m", "km", "inch", "foot", "yard", "mile"}),
    Dimension.COUNT: frozenset({"piece", "pieces", "unit", "units", "dozen", "count"}),
}


def normalize_unit(unit: Optional[str]) -> str:
    """
    Приводит единицу измерения к каноническому виду: lower + strip.
    Пустое значение или None -> "".
    """
    if not unit:
        return ""
    return str(unit).strip().lower()


def classify_unit(unit: Optional[str]) -> Optional[Dimension]:
    """
    Определяет размерность единицы (вес, объём, длина, штуки).
    Нераспознанные единицы -> None.
    """
    normalized = normalize_unit(unit)
    for dimension, members in UNIT_DIMENSIONS.items():
        if normalized in members:
            return dimension
    return None


class UnitNormalizer:
    """
    Мемоизация normalize/classify в рамках одного прогона аудита.

    Кэш живёт ровно столько, сколько объект (один на сессию), и ограничен
    по размеру: при превышении max_cache_size полностью сбрасывается.
    """

    def __init__(self, max_cache_size: int = 1024) -> None:
        if max_cache_size <= 0:
            raise ValueError("max_cache_size must be positive")
        self._max_cache_size = max_cache_size
        self._cache: Dict[str, Tuple[str, Optional[Dimension]]] = {}

    def _lookup(self, unit: Optional[str]) -> Tuple[str, Optional[Dimension]]:
        key = "" if unit is None else str(unit)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        if len(self._cache) >= self._max_cache_size:
            self._cache.clear()

        normalized = normalize_unit(key)
        entry = (normalized, classify_unit(normalized))
        self._cache[key] = entry
        return entry

    def normalize(self, unit: Optional[str]) -> str:
        return self._lookup(unit)[0]

    def classify(self, unit: Optional[str]) -> Optional[Dimension]:
        return self._lookup(unit)[1]

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear(self) -> None:
        self._cache.clear()
