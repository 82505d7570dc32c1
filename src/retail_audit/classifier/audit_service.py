# src/retail_audit/classifier/audit_service.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from retail_audit.classifier.advisory import AdvisoryReconciler
from retail_audit.classifier.threshold_resolver import ThresholdIndex
from retail_audit.config import AuditConfig, config
from retail_audit.data_models import AuditResult, Outcome, RawRecord, ThresholdEntry
from retail_audit.llm_client.base import LLMClient
from retail_audit.llm_client.provider_client import ProviderLLMClient
from retail_audit.units.normalizer import UnitNormalizer


logger = logging.getLogger(__name__)


class AuditValidationError(ValueError):
    """Не хватает обязательных входных данных - прогон не начинается."""

    def __init__(self, missing: Sequence[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Missing required fields: {', '.join(self.missing)}")


@dataclass
class AuditSummary:
    total: int = 0
    passed: int = 0
    errors: int = 0
    advisory_errors: int = 0

    @classmethod
    def from_results(cls, results: Sequence[AuditResult]) -> "AuditSummary":
        summary = cls(total=len(results))
        for result in results:
            if result.verdict.outcome is Outcome.PASS:
                summary.passed += 1
            else:
                summary.errors += 1
            if result.advisory.is_error:
                summary.advisory_errors += 1
        return summary


def validate_audit_input(
    session_id: Optional[str],
    audit_prompt: Optional[str],
    raw_records: Optional[Sequence[RawRecord]],
    thresholds: Optional[Sequence[ThresholdEntry]],
) -> None:
    """
    Проверяет все входы разом и поднимает одну ошибку со списком пропущенных полей.
    """
    missing = []
    if not session_id:
        missing.append("session_id")
    if not isinstance(audit_prompt, str) or not audit_prompt.strip():
        missing.append("audit_prompt")
    if not raw_records:
        missing.append("raw_records")
    if not thresholds:
        missing.append("thresholds")
    if missing:
        raise AuditValidationError(missing)


class AuditService:
    """
    Сервис аудита buylead'ов.

    Отвечает за:
    - валидацию входа;
    - построение индекса порогов (один раз на прогон);
    - обработку записей пачками с ограничением одновременных запросов к LLM;
    - гарантию «одна запись на входе - один AuditResult на выходе».
    """

    def __init__(self, llm_client: LLMClient, audit_config: Optional[AuditConfig] = None) -> None:
        self._llm_client = llm_client
        self._config = audit_config or config.audit
        if self._config.batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if self._config.concurrency <= 0:
            raise ValueError("concurrency must be positive")

    async def run_audit(
        self,
        session_id: str,
        audit_prompt: str,
        raw_records: Sequence[RawRecord],
        thresholds: Sequence[ThresholdEntry],
    ) -> List[AuditResult]:
        validate_audit_input(session_id, audit_prompt, raw_records, thresholds)

        # Кэш единиц и индекс порогов принадлежат прогону и умирают вместе с ним
        normalizer = UnitNormalizer(max_cache_size=self._config.unit_cache_max_size)
        index = ThresholdIndex.build(thresholds, normalizer)
        reconciler = AdvisoryReconciler(self._llm_client, audit_prompt, normalizer)
        semaphore = asyncio.Semaphore(self._config.concurrency)

        total = len(raw_records)
        logger.info(
            "Starting audit for session %s: %s records, %s MCATs with thresholds",
            session_id,
            total,
            len(index),
        )

        async def process(record: RawRecord) -> AuditResult:
            threshold = index.resolve(record.category_id, record.quantity_unit)
            async with semaphore:
                return await reconciler.reconcile(session_id, record, threshold)

        results: List[AuditResult] = []
        batch_size = self._config.batch_size
        for start in range(0, total, batch_size):
            batch = raw_records[start:start + batch_size]
            batch_results = await asyncio.gather(*(process(record) for record in batch))
            results.extend(batch_results)
            logger.info("Processed %s/%s records", len(results), total)

        summary = AuditSummary.from_results(results)
        logger.info(
            "Audit finished for session %s: %s PASS, %s ERROR, %s advisory errors",
            session_id,
            summary.passed,
            summary.errors,
            summary.advisory_errors,
        )
        return results


async def run_audit(
    session_id: str,
    audit_prompt: str,
    raw_records: Sequence[RawRecord],
    thresholds: Sequence[ThresholdEntry],
    llm_client: Optional[LLMClient] = None,
    audit_config: Optional[AuditConfig] = None,
) -> List[AuditResult]:
    """
    Точка входа для внешних слоёв (CLI/API).

    Клиент LLM по умолчанию создаётся до обработки записей, поэтому
    ошибка конфигурации (нет ключа) всплывает сразу.
    """
    validate_audit_input(session_id, audit_prompt, raw_records, thresholds)
    if llm_client is None:
        llm_client = ProviderLLMClient()
    service = AuditService(llm_client=llm_client, audit_config=audit_config)
    return await service.run_audit(session_id, audit_prompt, raw_records, thresholds)
