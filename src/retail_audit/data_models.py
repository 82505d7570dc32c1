# src/retail_audit/data_models.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class Outcome(str, Enum):
    PASS = "PASS"
    ERROR = "ERROR"


class MCATType(str, Enum):
    STANDARD = "Standard MCAT"
    BUSINESS = "Business MCAT"


class VerdictRule(str, Enum):
    """Какая ветка детерминированной логики сработала."""
    BUSINESS_OVERRIDE = "business_override"
    THRESHOLD_MISSING = "threshold_missing"
    THRESHOLD_COMPARISON = "threshold_comparison"


class AdvisoryType(str, Enum):
    RETAIL = "Retail"
    NON_RETAIL = "Non-Retail"
    UNKNOWN = "Unknown"
    ERROR = "Error"


# Фиксированный набор категорий аудита
RETAIL_CORRECTLY_MARKED = "Retail Correctly Marked"
NON_RETAIL_CORRECTLY_MARKED = "Non-Retail Correctly Marked"
RETAIL_WRONGLY_MARKED = "Retail Wrongly Marked"
NON_RETAIL_WRONGLY_MARKED = "Non-Retail Wrongly Marked"
THRESHOLD_NOT_AVAILABLE = "Threshold Not Available"


@dataclass(frozen=True)
class RawRecord:
    """
    Один buylead из выгрузки.

    id - непрозрачный идентификатор, уникальный в рамках сессии;
    display_id - ID buylead'а, который видит пользователь (если не задан, берём id).
    """
    id: str
    category_id: str
    category_name: str = ""
    quantity: Any = 0  # может прийти мусором из выгрузки, классификатор трактует как 0
    quantity_unit: str = ""
    probable_order_value: str = ""
    segment_label: str = ""  # текущая разметка системы, например "Retail - Indian"
    details: str = ""
    business_category_override: Optional[int] = None  # 1 = всегда Non-Retail
    display_id: Optional[str] = None

    @property
    def buylead_id(self) -> str:
        return self.display_id or self.id


@dataclass(frozen=True)
class ThresholdEntry:
    """
    Порог по количеству для MCAT: выше cutoff_quantity заявка считается Non-Retail.
    """
    category_id: str
    category_name: str
    cutoff_quantity: float
    cutoff_unit: str


@dataclass(frozen=True)
class ClassificationVerdict:
    """
    Результат детерминированной (Indiamart) логики. Строится только из входов.
    """
    outcome: Outcome
    category_label: str
    reason: str
    mcat_type: MCATType
    threshold_available: bool
    threshold_display: str
    rule: VerdictRule
    converted_quantity: Optional[float] = None


@dataclass(frozen=True)
class AdvisorySignals:
    threshold: Optional[str] = None
    order_value: Optional[str] = None
    buyer_intent: Optional[str] = None
    product_type: Optional[str] = None

    def as_dict(self) -> Dict[str, str]:
        items = {
            "threshold": self.threshold,
            "order_value": self.order_value,
            "buyer_intent": self.buyer_intent,
            "product_type": self.product_type,
        }
        return {k: v for k, v in items.items() if v}


@dataclass(frozen=True)
class AdvisoryAssessment:
    """
    Мнение LLM. Только рекомендация: на итоговый outcome не влияет.
    """
    suggested_type: AdvisoryType
    suggested_threshold: str
    reasoning: str
    signals: Optional[AdvisorySignals] = None
    conflict_notes: Optional[str] = None
    raw_llm_response: Optional[Dict[str, Any]] = field(default=None, compare=False)

    @property
    def is_error(self) -> bool:
        return self.suggested_type is AdvisoryType.ERROR


@dataclass(frozen=True)
class AuditResult:
    """
    Итог аудита одной записи в рамках сессии. Ключ - (session_id, record.id).
    """
    session_id: str
    record: RawRecord
    verdict: ClassificationVerdict
    advisory: AdvisoryAssessment
    narrative: str

    @property
    def key(self) -> tuple[str, str]:
        return self.session_id, self.record.id

    def to_row(self) -> Dict[str, Any]:
        """
        Плоское представление в колонках таблицы audit_results.
        """
        signals = self.advisory.signals.as_dict() if self.advisory.signals else None
        return {
            "session_id": self.session_id,
            "raw_data_id": self.record.id,
            "eto_ofr_display_id": self.record.buylead_id,
            "fk_glcat_mcat_id": self.record.category_id,
            "category_name": self.record.category_name,
            "quantity": self.record.quantity,
            "quantity_unit": self.record.quantity_unit,
            "bl_segment": self.record.segment_label,
            "business_mcat_key": self.record.business_category_override,
            "mcat_type": self.verdict.mcat_type.value,
            "indiamart_audit_outcome": self.verdict.outcome.value,
            "threshold_available": self.verdict.threshold_available,
            "threshold_value": self.verdict.threshold_display,
            "indiamart_category": self.verdict.category_label,
            "indiamart_reason": self.verdict.reason,
            "llm_bl_type": self.advisory.suggested_type.value,
            "llm_threshold_value": self.advisory.suggested_threshold,
            "llm_threshold_reason": self.advisory.reasoning,
            "llm_evaluation_signals": signals or None,
            "llm_conflict_notes": self.advisory.conflict_notes,
            "evaluation_rationale": self.narrative,
        }
