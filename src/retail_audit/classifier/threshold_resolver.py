# src/retail_audit/classifier/threshold_resolver.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from retail_audit.data_models import ThresholdEntry
from retail_audit.units.normalizer import Dimension, UnitNormalizer


@dataclass(frozen=True)
class IndexedThreshold:
    entry: ThresholdEntry
    normalized_unit: str
    dimension: Optional[Dimension]


class ThresholdIndex:
    """
    Индекс порогов: MCAT ID -> упорядоченный список порогов этой категории.

    Строится один раз на сессию и дальше только читается,
    поэтому его можно безопасно использовать из любого числа корутин.
    """

    def __init__(self, by_category: Dict[str, Tuple[IndexedThreshold, ...]], normalizer: UnitNormalizer) -> None:
        self._by_category = by_category
        self._normalizer = normalizer

    @classmethod
    def build(cls, entries: Iterable[ThresholdEntry], normalizer: Optional[UnitNormalizer] = None) -> "ThresholdIndex":
        normalizer = normalizer or UnitNormalizer()
        grouped: Dict[str, List[IndexedThreshold]] = {}

        for entry in entries:
            key = str(entry.category_id).strip()
            grouped.setdefault(key, []).append(
                IndexedThreshold(
                    entry=entry,
                    normalized_unit=normalizer.normalize(entry.cutoff_unit),
                    dimension=normalizer.classify(entry.cutoff_unit),
                )
            )

        frozen = {key: tuple(items) for key, items in grouped.items()}
        return cls(frozen, normalizer)

    def entries_for(self, category_id: str) -> Tuple[IndexedThreshold, ...]:
        return self._by_category.get(str(category_id).strip(), ())

    def __contains__(self, category_id: object) -> bool:
        return str(category_id).strip() in self._by_category

    def __len__(self) -> int:
        return len(self._by_category)

    def resolve(self, category_id: str, record_unit: Optional[str]) -> Optional[ThresholdEntry]:
        """
        Подбирает порог для записи. Порядок (первое совпадение выигрывает):
        1) точное совпадение нормализованной единицы;
        2) первый порог той же размерности (кг vs тонна);
        3) первый порог категории вообще - конвертация тогда, скорее всего, no-op;
        4) у категории нет порогов -> None.
        """
        candidates = self.entries_for(category_id)
        if not candidates:
            return None

        unit = self._normalizer.normalize(record_unit)
        for item in candidates:
            if item.normalized_unit == unit:
                return item.entry

        dimension = self._normalizer.classify(unit)
        if dimension is not None:
            for item in candidates:
                if item.dimension == dimension:
                    return item.entry

        return candidates[0].entry
