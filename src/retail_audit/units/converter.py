# src/retail_audit/units/converter.py
from __future__ import annotations

from typing import Dict, Optional

from retail_audit.units.normalizer import Dimension, UnitNormalizer, classify_unit, normalize_unit


# Множители относительно базовой единицы размерности:
# вес - грамм, объём - миллилитр, длина - миллиметр, штуки - единица.
CONVERSION_FACTORS: Dict[Dimension, Dict[str, float]] = {
    Dimension.WEIGHT: {
        "mg": 0.001,
        "g": 1.0,
        "kg": 1000.0,
        "tonne": 1_000_000.0,
        "lb": 453.592,
        "lbs": 453.592,
        "oz": 28.3495,
        "ounce": 28.3495,
    },
    Dimension.VOLUME: {
        "ml": 1.0,
        "cc": 1.0,
        "l": 1000.0,
        "liter": 1000.0,
        "litre": 1000.0,
        "gallon": 3785.41,
        "pint": 473.176,
    },
    Dimension.LENGTH: {
        "mm": 1.0,
        "cm": 10.0,
        "m": 1000.0,
        "km": 1_000_000.0,
        "inch": 25.4,
        "foot": 304.8,
        "yard": 914.4,
        "mile": 1_609_344.0,
    },
    Dimension.COUNT: {
        "piece": 1.0,
        "pieces": 1.0,
        "unit": 1.0,
        "units": 1.0,
        "dozen": 12.0,
        "count": 1.0,
    },
}


def convert_quantity(
    value: float,
    from_unit: Optional[str],
    to_unit: Optional[str],
    normalizer: Optional[UnitNormalizer] = None,
) -> float:
    """
    Переводит количество из from_unit в to_unit.

    Никогда не падает и не угадывает:
    - одинаковые единицы -> значение без изменений;
    - неизвестная размерность или разные размерности -> значение без изменений;
    - иначе value * factor(from) / factor(to).
    """
    if normalizer is not None:
        source, target = normalizer.normalize(from_unit), normalizer.normalize(to_unit)
        source_dim, target_dim = normalizer.classify(source), normalizer.classify(target)
    else:
        source, target = normalize_unit(from_unit), normalize_unit(to_unit)
        source_dim, target_dim = classify_unit(source), classify_unit(target)

    if source == target:
        return value

    if source_dim is None or target_dim is None or source_dim != target_dim:
        return value

    factors = CONVERSION_FACTORS[source_dim]
    return value * factors.get(source, 1.0) / factors.get(target, 1.0)
