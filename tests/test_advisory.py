# tests/test_advisory.py
import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from retail_audit.classifier.advisory import (
    AdvisoryReconciler,
    compose_narrative,
    normalize_bl_type,
    parse_advisory_reply,
)
from retail_audit.classifier.deterministic import classify_record
from retail_audit.data_models import AdvisoryType, Outcome, RawRecord, ThresholdEntry
from retail_audit.llm_client.base import LLMClient, LLMError, LLMResponse


class DummyLLMClient(LLMClient):
    async def complete(self, system_prompt, user_prompt, *, temperature=0.0, max_tokens=None, json_mode=True):
        raise NotImplementedError


RECORD = RawRecord(
    id="r1",
    display_id="BL-1",
    category_id="101",
    category_name="Basmati Rice",
    quantity=2,
    quantity_unit="tonne",
    probable_order_value="Rs 1,00,000 - 2,00,000",
    segment_label="Retail - Indian",
    details="Wholesale requirement for restaurant chain",
)
THRESHOLD = ThresholdEntry(category_id="101", category_name="Basmati Rice", cutoff_quantity=100, cutoff_unit="kg")

GOOD_REPLY = {
    "bl_type": "Non-Retail",
    "threshold_value": "50 kg",
    "reasoning": "Two tonnes of rice is a commercial quantity.",
    "evaluation_signals": {
        "threshold": "well above cutoff",
        "order_value": "lakh range",
        "buyer_intent": "restaurant chain",
        "product_type": "staple",
    },
    "conflict_notes": "",
}


def test_parse_reply_full():
    assessment = parse_advisory_reply(json.dumps(GOOD_REPLY))
    assert assessment.suggested_type is AdvisoryType.NON_RETAIL
    assert assessment.suggested_threshold == "50 kg"
    assert assessment.signals.buyer_intent == "restaurant chain"
    assert assessment.conflict_notes is None


def test_parse_reply_defaults_for_missing_fields():
    assessment = parse_advisory_reply("{}")
    assert assessment.suggested_type is AdvisoryType.UNKNOWN
    assert assessment.suggested_threshold == "Not specified"
    assert assessment.reasoning == "No reasoning provided"
    assert assessment.signals is None


@pytest.mark.parametrize("content", ["{not valid json", "[1, 2]", '"Retail"'])
def test_parse_reply_rejects_malformed_content(content):
    with pytest.raises(LLMError):
        parse_advisory_reply(content)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("Retail", AdvisoryType.RETAIL),
        ("non retail", AdvisoryType.NON_RETAIL),
        ("NON_RETAIL", AdvisoryType.NON_RETAIL),
        ("wholesale", AdvisoryType.UNKNOWN),
        (None, AdvisoryType.UNKNOWN),
    ],
)
def test_normalize_bl_type(value, expected):
    assert normalize_bl_type(value) is expected


def test_system_prompt_embeds_instructions_and_precedence_rule():
    reconciler = AdvisoryReconciler(DummyLLMClient(), "Audit IndiaMART buyleads carefully.")
    prompt = reconciler.system_prompt
    assert prompt.startswith("Audit IndiaMART buyleads carefully.")
    assert "must NOT override" in prompt
    assert '"bl_type"' in prompt
    assert '"evaluation_signals"' in prompt
    assert '"conflict_notes"' in prompt


def test_reconcile_merges_verdict_and_advisory():
    client = DummyLLMClient()
    client.complete = AsyncMock(return_value=LLMResponse(content=json.dumps(GOOD_REPLY)))

    reconciler = AdvisoryReconciler(client, "Audit instructions")
    result = asyncio.run(reconciler.reconcile("s1", RECORD, THRESHOLD))

    assert result.key == ("s1", "r1")
    assert result.verdict.outcome is Outcome.ERROR
    assert result.verdict.category_label == "Retail Wrongly Marked"
    assert result.advisory.suggested_type is AdvisoryType.NON_RETAIL

    _, user_prompt = client.complete.await_args.args
    assert "BL-1" in user_prompt
    assert "100 kg" in user_prompt
    assert client.complete.await_args.kwargs["temperature"] == 0
    assert client.complete.await_args.kwargs["json_mode"] is True

    row = result.to_row()
    assert row["indiamart_audit_outcome"] == "ERROR"
    assert row["llm_bl_type"] == "Non-Retail"
    assert row["evaluation_rationale"] == result.narrative


def test_advisory_agreeing_with_retail_never_changes_verdict():
    client = DummyLLMClient()
    client.complete = AsyncMock(
        return_value=LLMResponse(content=json.dumps({"bl_type": "Retail", "reasoning": "looks retail"}))
    )
    reconciler = AdvisoryReconciler(client, "Audit instructions")
    result = asyncio.run(reconciler.reconcile("s1", RECORD, THRESHOLD))

    assert result.advisory.suggested_type is AdvisoryType.RETAIL
    assert result.verdict == classify_record(RECORD, THRESHOLD)
    assert result.to_row()["indiamart_category"] == "Retail Wrongly Marked"


@pytest.mark.parametrize("error", [LLMError("HTTP 500"), RuntimeError("boom")])
def test_llm_failure_becomes_error_assessment(error):
    client = DummyLLMClient()
    client.complete = AsyncMock(side_effect=error)

    reconciler = AdvisoryReconciler(client, "Audit instructions")
    result = asyncio.run(reconciler.reconcile("s1", RECORD, THRESHOLD))

    assert result.advisory.suggested_type is AdvisoryType.ERROR
    assert result.advisory.suggested_threshold == "Error"
    assert result.advisory.reasoning == f"Error processing with AI: {error}"
    assert result.verdict.category_label == "Retail Wrongly Marked"


def test_malformed_reply_becomes_error_assessment():
    client = DummyLLMClient()
    client.complete = AsyncMock(return_value=LLMResponse(content="Sure! Here is my answer"))

    reconciler = AdvisoryReconciler(client, "Audit instructions")
    result = asyncio.run(reconciler.reconcile("s1", RECORD, THRESHOLD))

    assert result.advisory.is_error
    assert "Error processing with AI" in result.advisory.reasoning


def test_narrative_contains_path_reason_signals_and_precedence():
    verdict = classify_record(RECORD, THRESHOLD)
    advisory = parse_advisory_reply(json.dumps({**GOOD_REPLY, "conflict_notes": "none really"}))

    narrative = compose_narrative(verdict, advisory)

    assert "Quantity compared against MCAT retail threshold" in narrative
    assert verdict.reason in narrative
    assert "Buyer intent: restaurant chain" in narrative
    assert "Conflict notes: none really" in narrative
    assert narrative.endswith("takes precedence; the advisory assessment is non-binding.")


def test_narrative_for_missing_threshold_and_failed_advisory():
    verdict = classify_record(RECORD, None)
    advisory = parse_advisory_reply("{}")
    client = DummyLLMClient()
    client.complete = AsyncMock(side_effect=LLMError("timeout"))
    failed = asyncio.run(AdvisoryReconciler(client, "x").assess(RECORD, verdict))

    assert "Threshold not available" in compose_narrative(verdict, advisory)
    narrative = compose_narrative(verdict, failed)
    assert "Advisory assessment unavailable" in narrative
    assert "takes precedence" in narrative
