# tests/test_deterministic_classifier.py
import pytest

from retail_audit.classifier.deterministic import classify_record, coerce_quantity, format_threshold
from retail_audit.data_models import (
    MCATType,
    Outcome,
    RawRecord,
    ThresholdEntry,
    VerdictRule,
)


THRESHOLD_KG = ThresholdEntry(category_id="101", category_name="Rice", cutoff_quantity=1000, cutoff_unit="kg")


def _record(quantity=10, unit="kg", segment="Retail - Indian", override=None) -> RawRecord:
    return RawRecord(
        id="r1",
        category_id="101",
        category_name="Rice",
        quantity=quantity,
        quantity_unit=unit,
        probable_order_value="Rs 5,000",
        segment_label=segment,
        details="Need rice for home",
        business_category_override=override,
    )


def test_business_override_with_retail_segment_is_error():
    for quantity in (1, 10_000):
        verdict = classify_record(_record(quantity=quantity, override=1), THRESHOLD_KG)
        assert verdict.outcome is Outcome.ERROR
        assert verdict.category_label == "Retail Wrongly Marked"
        assert verdict.mcat_type is MCATType.BUSINESS
        assert verdict.rule is VerdictRule.BUSINESS_OVERRIDE
        assert "Business MCAT" in verdict.reason

    # Порог не нужен: override срабатывает раньше
    verdict = classify_record(_record(override=1), None)
    assert verdict.category_label == "Retail Wrongly Marked"
    assert verdict.threshold_display == "NA"


def test_business_override_with_non_retail_segment_passes():
    verdict = classify_record(_record(override=1, segment="Non-Retail"), THRESHOLD_KG)
    assert verdict.outcome is Outcome.PASS
    assert verdict.category_label == "Non-Retail Correctly Marked"
    assert verdict.reason == ""
    assert verdict.threshold_display == "1000 kg"


def test_missing_threshold():
    verdict = classify_record(_record(), None)
    assert verdict.outcome is Outcome.ERROR
    assert verdict.category_label == "Threshold Not Available"
    assert verdict.threshold_display == "NA"
    assert verdict.threshold_available is False
    assert verdict.mcat_type is MCATType.STANDARD
    assert verdict.reason


def test_boundary_is_inclusive_after_conversion():
    verdict = classify_record(_record(quantity=1, unit="tonne"), THRESHOLD_KG)
    assert verdict.converted_quantity == pytest.approx(1000)
    assert verdict.outcome is Outcome.PASS
    assert verdict.category_label == "Retail Correctly Marked"


def test_non_retail_correctly_marked():
    verdict = classify_record(_record(quantity=2, unit="tonne", segment="Non-Retail"), THRESHOLD_KG)
    assert verdict.outcome is Outcome.PASS
    assert verdict.category_label == "Non-Retail Correctly Marked"


def test_retail_wrongly_marked_reason_is_auditable():
    verdict = classify_record(_record(quantity=1.5, unit="Tonne", segment="retail - foreign"), THRESHOLD_KG)
    assert verdict.outcome is Outcome.ERROR
    assert verdict.category_label == "Retail Wrongly Marked"
    assert "1.5 Tonne" in verdict.reason
    assert "1500.00 kg" in verdict.reason
    assert "threshold 1000 kg" in verdict.reason
    assert "exceeds" in verdict.reason


def test_non_retail_wrongly_marked():
    verdict = classify_record(_record(quantity=500, unit="g", segment="Non-Retail"), THRESHOLD_KG)
    assert verdict.outcome is Outcome.ERROR
    assert verdict.category_label == "Non-Retail Wrongly Marked"
    assert "500 g" in verdict.reason
    assert "0.50 kg" in verdict.reason
    assert "within" in verdict.reason


def test_malformed_quantity_is_treated_as_zero():
    verdict = classify_record(_record(quantity="lots", segment="Retail - Indian"), THRESHOLD_KG)
    assert verdict.converted_quantity == 0
    assert verdict.category_label == "Retail Correctly Marked"

    assert coerce_quantity(None) == 0
    assert coerce_quantity(float("nan")) == 0
    assert coerce_quantity("-3") == 0
    assert coerce_quantity("2.5") == 2.5


def test_classifier_is_pure():
    record = _record(quantity=3, unit="tonne")
    assert classify_record(record, THRESHOLD_KG) == classify_record(record, THRESHOLD_KG)


def test_format_threshold():
    assert format_threshold(None) == "NA"
    assert format_threshold(ThresholdEntry("1", "x", 2.5, "litre")) == "2.5 litre"
