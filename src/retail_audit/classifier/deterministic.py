# src/retail_audit/classifier/deterministic.py
from __future__ import annotations

import math
from typing import Any, Optional

from retail_audit.data_models import (
    NON_RETAIL_CORRECTLY_MARKED,
    NON_RETAIL_WRONGLY_MARKED,
    RETAIL_CORRECTLY_MARKED,
    RETAIL_WRONGLY_MARKED,
    THRESHOLD_NOT_AVAILABLE,
    ClassificationVerdict,
    MCATType,
    Outcome,
    RawRecord,
    ThresholdEntry,
    VerdictRule,
)
from retail_audit.units.converter import convert_quantity
from retail_audit.units.normalizer import UnitNormalizer


RETAIL_SEGMENTS = frozenset({"retail - indian", "retail - foreign"})
NOT_AVAILABLE = "NA"


def coerce_quantity(value: Any) -> float:
    """
    Количество из выгрузки -> float. Мусор, NaN и отрицательные значения трактуем как 0.
    """
    try:
        quantity = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(quantity) or math.isinf(quantity) or quantity < 0:
        return 0.0
    return quantity


def format_number(value: float) -> str:
    """1000.0 -> "1000", 2.5 -> "2.5"."""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def is_marked_retail(segment_label: Optional[str]) -> bool:
    return (segment_label or "").strip().lower() in RETAIL_SEGMENTS


def format_threshold(threshold: Optional[ThresholdEntry]) -> str:
    if threshold is None:
        return NOT_AVAILABLE
    return f"{format_number(coerce_quantity(threshold.cutoff_quantity))} {threshold.cutoff_unit}".strip()


def classify_record(
    record: RawRecord,
    threshold: Optional[ThresholdEntry],
    normalizer: Optional[UnitNormalizer] = None,
) -> ClassificationVerdict:
    """
    Indiamart-логика: чистая функция от записи и найденного порога.

    Порядок веток:
    1) business_category_override == 1 - категория всегда Non-Retail;
    2) порога нет - ERROR "Threshold Not Available";
    3) сравнение количества (в единицах порога) с cutoff, граница включительно.
    """
    marked_retail = is_marked_retail(record.segment_label)
    threshold_display = format_threshold(threshold)

    if record.business_category_override == 1:
        if marked_retail:
            return ClassificationVerdict(
                outcome=Outcome.ERROR,
                category_label=RETAIL_WRONGLY_MARKED,
                reason=(
                    "Business MCAT Key = 1 requires Non-Retail classification, "
                    "but system marked as Retail"
                ),
                mcat_type=MCATType.BUSINESS,
                threshold_available=threshold is not None,
                threshold_display=threshold_display,
                rule=VerdictRule.BUSINESS_OVERRIDE,
            )
        return ClassificationVerdict(
            outcome=Outcome.PASS,
            category_label=NON_RETAIL_CORRECTLY_MARKED,
            reason="",
            mcat_type=MCATType.BUSINESS,
            threshold_available=threshold is not None,
            threshold_display=threshold_display,
            rule=VerdictRule.BUSINESS_OVERRIDE,
        )

    if threshold is None:
        return ClassificationVerdict(
            outcome=Outcome.ERROR,
            category_label=THRESHOLD_NOT_AVAILABLE,
            reason="MCAT threshold not found in attached sheet - cannot perform threshold-based audit",
            mcat_type=MCATType.STANDARD,
            threshold_available=False,
            threshold_display=NOT_AVAILABLE,
            rule=VerdictRule.THRESHOLD_MISSING,
        )

    quantity = coerce_quantity(record.quantity)
    cutoff = coerce_quantity(threshold.cutoff_quantity)
    converted = convert_quantity(quantity, record.quantity_unit, threshold.cutoff_unit, normalizer)
    should_be_retail = converted <= cutoff

    comparison = (
        f"Quantity {format_number(quantity)} {record.quantity_unit} "
        f"(= {converted:.2f} {threshold.cutoff_unit})"
    )
    limit = f"threshold {format_number(cutoff)} {threshold.cutoff_unit}"

    if should_be_retail and marked_retail:
        outcome, label, reason = Outcome.PASS, RETAIL_CORRECTLY_MARKED, ""
    elif not should_be_retail and not marked_retail:
        outcome, label, reason = Outcome.PASS, NON_RETAIL_CORRECTLY_MARKED, ""
    elif should_be_retail:
        outcome, label = Outcome.ERROR, NON_RETAIL_WRONGLY_MARKED
        reason = f"{comparison} is within {limit} but system marked as Non-Retail"
    else:
        outcome, label = Outcome.ERROR, RETAIL_WRONGLY_MARKED
        reason = f"{comparison} exceeds {limit} but system marked as Retail"

    return ClassificationVerdict(
        outcome=outcome,
        category_label=label,
        reason=reason,
        mcat_type=MCATType.STANDARD,
        threshold_available=True,
        threshold_display=threshold_display,
        rule=VerdictRule.THRESHOLD_COMPARISON,
        converted_quantity=converted,
    )
