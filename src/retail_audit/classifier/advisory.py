# src/retail_audit/classifier/advisory.py
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from retail_audit.classifier.deterministic import classify_record
from retail_audit.classifier.prompt_builder import PromptBuilder
from retail_audit.config import config
from retail_audit.data_models import (
    AdvisoryAssessment,
    AdvisorySignals,
    AdvisoryType,
    AuditResult,
    ClassificationVerdict,
    RawRecord,
    ThresholdEntry,
    VerdictRule,
)
from retail_audit.llm_client.base import LLMClient, LLMError
from retail_audit.units.normalizer import UnitNormalizer


logger = logging.getLogger(__name__)


RULE_DESCRIPTIONS = {
    VerdictRule.BUSINESS_OVERRIDE: "Business MCAT override (Business MCAT Key = 1 forces Non-Retail)",
    VerdictRule.THRESHOLD_MISSING: "Threshold not available for this MCAT",
    VerdictRule.THRESHOLD_COMPARISON: "Quantity compared against MCAT retail threshold",
}

SIGNAL_LABELS = {
    "threshold": "Threshold",
    "order_value": "Order value",
    "buyer_intent": "Buyer intent",
    "product_type": "Product type",
}


def normalize_bl_type(value: Any) -> AdvisoryType:
    """
    "retail" / "Non Retail" / "non-retail" -> AdvisoryType. Всё остальное - Unknown.
    """
    if not isinstance(value, str):
        return AdvisoryType.UNKNOWN
    key = value.strip().lower().replace("_", "-").replace(" ", "-")
    if key == "retail":
        return AdvisoryType.RETAIL
    if key in ("non-retail", "nonretail"):
        return AdvisoryType.NON_RETAIL
    return AdvisoryType.UNKNOWN


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def _parse_signals(raw: Any) -> Optional[AdvisorySignals]:
    if not isinstance(raw, dict):
        return None
    signals = AdvisorySignals(
        threshold=_text(raw.get("threshold")),
        order_value=_text(raw.get("order_value")),
        buyer_intent=_text(raw.get("buyer_intent")),
        product_type=_text(raw.get("product_type")),
    )
    return signals if signals.as_dict() else None


def parse_advisory_reply(content: str) -> AdvisoryAssessment:
    """
    Разбирает JSON-ответ модели в AdvisoryAssessment.

    Невалидный JSON или не-объект - LLMError (обрабатывается как локальная ошибка записи).
    Отсутствующие поля заполняются мягкими дефолтами.
    """
    try:
        raw = json.loads(content)
    except (TypeError, json.JSONDecodeError) as exc:
        raise LLMError(f"Failed to parse LLM reply as JSON: {exc}") from exc

    if not isinstance(raw, dict):
        raise LLMError("LLM reply is not a JSON object")

    return AdvisoryAssessment(
        suggested_type=normalize_bl_type(raw.get("bl_type")),
        suggested_threshold=_text(raw.get("threshold_value")) or "Not specified",
        reasoning=_text(raw.get("reasoning")) or "No reasoning provided",
        signals=_parse_signals(raw.get("evaluation_signals")),
        conflict_notes=_text(raw.get("conflict_notes")),
        raw_llm_response=raw,
    )


def error_assessment(exc: BaseException) -> AdvisoryAssessment:
    return AdvisoryAssessment(
        suggested_type=AdvisoryType.ERROR,
        suggested_threshold="Error",
        reasoning=f"Error processing with AI: {exc}",
    )


def compose_narrative(verdict: ClassificationVerdict, advisory: AdvisoryAssessment) -> str:
    """
    Итоговое обоснование: какая ветка сработала, причина, сигналы LLM
    и явная фраза о приоритете детерминированного вердикта.
    """
    parts = [
        f"Verdict path: {RULE_DESCRIPTIONS[verdict.rule]}.",
        f"Indiamart audit: {verdict.outcome.value} - {verdict.category_label} "
        f"(threshold: {verdict.threshold_display}).",
    ]
    if verdict.reason:
        parts.append(f"Reason: {verdict.reason}.")

    if advisory.is_error:
        parts.append(f"Advisory assessment unavailable: {advisory.reasoning}")
    else:
        parts.append(
            f"Advisory assessment: {advisory.suggested_type.value} "
            f"(suggested threshold: {advisory.suggested_threshold}). {advisory.reasoning}"
        )
        if advisory.signals is not None:
            signals = "; ".join(
                f"{SIGNAL_LABELS[name]}: {value}" for name, value in advisory.signals.as_dict().items()
            )
            parts.append(f"Advisory signals: {signals}.")
        if advisory.conflict_notes:
            parts.append(f"Conflict notes: {advisory.conflict_notes}")

    parts.append(
        f"Conclusion: the Indiamart verdict ({verdict.outcome.value} / {verdict.category_label}) "
        "takes precedence; the advisory assessment is non-binding."
    )
    return " ".join(parts)


class AdvisoryReconciler:
    """
    Склейка детерминированного вердикта и advisory-оценки LLM в AuditResult.

    Ошибки LLM не пробрасываются наружу: запись получает Error-оценку,
    вердикт и соседние записи не затрагиваются.
    """

    def __init__(
        self,
        llm_client: LLMClient,
        audit_instructions: str,
        normalizer: Optional[UnitNormalizer] = None,
        max_tokens: Optional[int] = None,
    ) -> None:
        self._llm_client = llm_client
        self._prompt_builder = PromptBuilder()
        self._system_prompt = self._prompt_builder.build_system_prompt(audit_instructions)
        self._normalizer = normalizer
        self._max_tokens = max_tokens or config.llm.max_tokens

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    async def assess(self, record: RawRecord, verdict: ClassificationVerdict) -> AdvisoryAssessment:
        user_prompt = self._prompt_builder.build_user_prompt(record, verdict)
        try:
            response = await self._llm_client.complete(
                self._system_prompt,
                user_prompt,
                temperature=0,
                max_tokens=self._max_tokens,
                json_mode=True,
            )
            return parse_advisory_reply(response.content)
        except LLMError as exc:
            logger.warning("Advisory assessment failed for buylead '%s': %s", record.buylead_id, exc)
            return error_assessment(exc)
        except Exception as exc:
            logger.exception("Unexpected error in advisory assessment for buylead '%s'", record.buylead_id)
            return error_assessment(exc)

    async def reconcile(
        self,
        session_id: str,
        record: RawRecord,
        threshold: Optional[ThresholdEntry],
    ) -> AuditResult:
        verdict = classify_record(record, threshold, self._normalizer)
        advisory = await self.assess(record, verdict)
        return AuditResult(
            session_id=session_id,
            record=record,
            verdict=verdict,
            advisory=advisory,
            narrative=compose_narrative(verdict, advisory),
        )
