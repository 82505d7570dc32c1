# src/retail_audit/scripts/run_audit.py
"""
Полный прогон аудита одной сессии:
загрузка файлов -> сессия в БД -> аудит -> сохранение результатов -> CSV.

Запуск:
    python -m retail_audit.scripts.run_audit raw.csv thresholds.csv --prompt-file prompt.txt
"""
from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from retail_audit.classifier.audit_service import AuditService, AuditSummary, AuditValidationError
from retail_audit.config import config
from retail_audit.data_models import AuditResult
from retail_audit.io.db_io import (
    build_engine,
    build_session_factory,
    create_audit_session,
    get_session,
    init_db,
    save_audit_results,
    save_raw_records,
    save_threshold_entries,
    update_session_status,
)
from retail_audit.io.export import export_results_csv
from retail_audit.io.loader import load_raw_records, load_thresholds
from retail_audit.llm_client.base import LLMClient, LLMConfigurationError
from retail_audit.llm_client.provider_client import ProviderLLMClient


logger = logging.getLogger(__name__)


DEFAULT_AUDIT_PROMPT = (
    "You are auditing IndiaMART Buyer Leads for correct Retail / Non-Retail segment marking."
)


async def audit_files(
    raw_path: Path,
    threshold_path: Path,
    audit_prompt: str,
    database_url: Optional[str] = None,
    output_path: Optional[Path] = None,
    llm_client: Optional[LLMClient] = None,
) -> List[AuditResult]:
    """
    Делает:
    - создание LLM-клиента (ошибка конфигурации - до любой обработки);
    - загрузку входных файлов и создание сессии;
    - аудит всех записей;
    - сохранение результатов и перевод сессии в completed/failed;
    - выгрузку CSV (если указан output_path).
    """
    client = llm_client or ProviderLLMClient()

    raw_records = load_raw_records(raw_path)
    thresholds = load_thresholds(threshold_path)

    engine = build_engine(database_url)
    init_db(engine)
    session_factory = build_session_factory(engine)

    with get_session(session_factory) as session:
        audit_session = create_audit_session(session)
        session_id = audit_session.id
        save_raw_records(session, session_id, raw_records)
        save_threshold_entries(session, session_id, thresholds)
        update_session_status(session, session_id, "processing")

    logger.info(
        "Session %s: %s raw records, %s thresholds loaded",
        session_id,
        len(raw_records),
        len(thresholds),
    )

    service = AuditService(llm_client=client)
    try:
        results = await service.run_audit(session_id, audit_prompt, raw_records, thresholds)
        with get_session(session_factory) as session:
            save_audit_results(session, results)
            update_session_status(session, session_id, "completed", results_count=len(results))
    except Exception as exc:
        with get_session(session_factory) as session:
            update_session_status(session, session_id, "failed", error_message=str(exc))
        raise

    if output_path is not None:
        export_results_csv(results, output_path)
        logger.info("Results exported to %s", output_path)

    summary = AuditSummary.from_results(results)
    logger.info("Audit finished.")
    logger.info("Total records: %s", summary.total)
    logger.info("Indiamart PASS: %s", summary.passed)
    logger.info("Indiamart ERROR: %s", summary.errors)
    logger.info("Advisory errors: %s", summary.advisory_errors)

    return results


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Audit buylead retail marking against MCAT thresholds.")
    parser.add_argument("raw_data", type=Path, help="CSV/XLSX with raw buylead records")
    parser.add_argument("thresholds", type=Path, help="CSV/XLSX with MCAT retail thresholds")
    parser.add_argument("--prompt-file", type=Path, help="text file with audit instructions")
    parser.add_argument("--database-url", default=config.database.url)
    parser.add_argument("--output", type=Path, help="where to write the results CSV")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO)
    args = build_parser().parse_args(argv)

    audit_prompt = DEFAULT_AUDIT_PROMPT
    if args.prompt_file is not None:
        audit_prompt = args.prompt_file.read_text(encoding="utf-8")

    try:
        asyncio.run(
            audit_files(
                raw_path=args.raw_data,
                threshold_path=args.thresholds,
                audit_prompt=audit_prompt,
                database_url=args.database_url,
                output_path=args.output,
            )
        )
    except (LLMConfigurationError, AuditValidationError, ValueError) as exc:
        logger.error("Audit aborted: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
