from __future__ import annotations

import json
from pathlib import Path
from typing import Sequence, Union

import pandas as pd

from retail_audit.data_models import AuditResult


EXPORT_COLUMNS = [
    "eto_ofr_display_id",
    "fk_glcat_mcat_id",
    "category_name",
    "quantity",
    "quantity_unit",
    "bl_segment",
    "business_mcat_key",
    "mcat_type",
    "indiamart_audit_outcome",
    "threshold_available",
    "threshold_value",
    "indiamart_category",
    "indiamart_reason",
    "llm_bl_type",
    "llm_threshold_value",
    "llm_threshold_reason",
    "llm_evaluation_signals",
    "llm_conflict_notes",
    "evaluation_rationale",
]


def results_to_dataframe(results: Sequence[AuditResult]) -> pd.DataFrame:
    rows = []
    for result in results:
        row = result.to_row()
        signals = row.get("llm_evaluation_signals")
        row["llm_evaluation_signals"] = json.dumps(signals, ensure_ascii=False) if signals else ""
        rows.append(row)
    return pd.DataFrame(rows, columns=EXPORT_COLUMNS)


def export_results_csv(results: Sequence[AuditResult], path: Union[str, Path]) -> Path:
    """
    Выгружает результаты аудита в CSV (UTF-8 с BOM, чтобы Excel не ломал кириллицу/₹).
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    results_to_dataframe(results).to_csv(path, index=False, encoding="utf-8-sig")
    return path
