from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from retail_audit.data_models import RawRecord, ThresholdEntry


# Колонки выгрузки buylead'ов -> поля RawRecord
RAW_COLUMN_MAPPING: Dict[str, str] = {
    "id": "id",
    "eto_ofr_display_id": "display_id",
    "fk_glcat_mcat_id": "category_id",
    "eto_ofr_glcat_mcat_name": "category_name",
    "quantity": "quantity",
    "quantity_unit": "quantity_unit",
    "probable_order_value": "probable_order_value",
    "bl_segment": "segment_label",
    "bl_details": "details",
    "business_mcat_key": "business_category_override",
}

# Колонки листа порогов -> поля ThresholdEntry
THRESHOLD_COLUMN_MAPPING: Dict[str, str] = {
    "fk_glcat_mcat_id": "category_id",
    "glcat_mcat_name": "category_name",
    "leap_retail_qty_cutoff": "cutoff_quantity",
    "gl_unit_name": "cutoff_unit",
}

RAW_REQUIRED_COLUMNS = ["eto_ofr_display_id", "fk_glcat_mcat_id", "quantity", "quantity_unit", "bl_segment"]
THRESHOLD_REQUIRED_COLUMNS = ["fk_glcat_mcat_id", "leap_retail_qty_cutoff", "gl_unit_name"]


def _normalize_column_name(name: str) -> str:
    """
    Нормализует название колонки: trim, lower, пробелы -> "_",
    Unicode-дефисы (U+2011, U+2010 и т.п.) -> обычный ASCII-дефис.
    """
    for char in ("‑", "‐", "−", "﹘", "–"):
        name = name.replace(char, "-")
    return "_".join(name.strip().lower().split())


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and pd.isna(value):
        return ""
    s = str(value).strip()
    # Частый случай: из pandas/Excel попадает строка "nan"
    if s.lower() == "nan":
        return ""
    return s


def _clean_id(value: Any) -> str:
    """Числовые ID из Excel приходят как 123.0 - возвращаем "123"."""
    if isinstance(value, float) and not pd.isna(value) and value.is_integer():
        return str(int(value))
    return _clean_text(value)


def _to_float(value: Any) -> float:
    number = pd.to_numeric(value, errors="coerce")
    if pd.isna(number):
        return 0.0
    return float(number)


def _to_flag(value: Any) -> Optional[int]:
    """Флаг - только целое число: "1", 1, 1.0. Всё остальное (например "1.9") -> None."""
    number = pd.to_numeric(value, errors="coerce")
    if pd.isna(number) or not float(number).is_integer():
        return None
    return int(number)


def read_table(path: Union[str, Path], sheet_name: Union[str, int] = 0) -> pd.DataFrame:
    """
    Читает CSV или XLSX в DataFrame со строковыми значениями и нормализованными колонками.
    """
    path = Path(path)
    if path.suffix.lower() in (".xlsx", ".xls"):
        df = pd.read_excel(path, sheet_name=sheet_name, dtype=object)
    else:
        df = pd.read_csv(path, dtype=object, keep_default_na=False)

    df.columns = [_normalize_column_name(str(c)) for c in df.columns]
    return df


def _check_columns(df: pd.DataFrame, required: List[str], what: str) -> None:
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(f"Missing columns in {what}: {missing}")


def _check_ids(ids: List[str]) -> None:
    # Номера строк считаем с 1, как позиции записей
    blank = [position for position, record_id in enumerate(ids, start=1) if not record_id]
    if blank:
        raise ValueError(f"Blank id in raw data rows: {blank}")

    seen: Dict[str, int] = {}
    duplicates: List[str] = []
    for position, record_id in enumerate(ids, start=1):
        if record_id in seen:
            duplicates.append(f"{record_id!r} (rows {seen[record_id]} and {position})")
        else:
            seen[record_id] = position
    if duplicates:
        raise ValueError(f"Duplicate id in raw data: {', '.join(duplicates)}")


def raw_records_from_dataframe(df: pd.DataFrame) -> List[RawRecord]:
    """
    DataFrame выгрузки -> список RawRecord.

    Если в файле нет колонки id, используем номер строки (уникален в рамках файла).
    Если колонка id есть, пустые и повторяющиеся значения - ошибка с номерами строк.
    Количество-мусор становится 0, business_mcat_key - None.
    """
    df = df.rename(columns={c: _normalize_column_name(str(c)) for c in df.columns})
    _check_columns(df, RAW_REQUIRED_COLUMNS, "raw data")

    # Переименуем только те колонки, которые реально есть в файле
    df = df.rename(columns={src: dst for src, dst in RAW_COLUMN_MAPPING.items() if src in df.columns})

    has_id_column = "id" in df.columns
    rows = df.to_dict(orient="records")
    if has_id_column:
        _check_ids([_clean_id(row.get("id")) for row in rows])

    records: List[RawRecord] = []
    for position, row in enumerate(rows, start=1):
        record_id = _clean_id(row.get("id")) if has_id_column else str(position)
        records.append(
            RawRecord(
                id=record_id,
                display_id=_clean_id(row.get("display_id")) or None,
                category_id=_clean_id(row.get("category_id")),
                category_name=_clean_text(row.get("category_name")),
                quantity=_to_float(row.get("quantity")),
                quantity_unit=_clean_text(row.get("quantity_unit")),
                probable_order_value=_clean_text(row.get("probable_order_value")),
                segment_label=_clean_text(row.get("segment_label")),
                details=_clean_text(row.get("details")),
                business_category_override=_to_flag(row.get("business_category_override")),
            )
        )
    return records


def thresholds_from_dataframe(df: pd.DataFrame) -> List[ThresholdEntry]:
    df = df.rename(columns={c: _normalize_column_name(str(c)) for c in df.columns})
    _check_columns(df, THRESHOLD_REQUIRED_COLUMNS, "threshold data")
    df = df.rename(columns={src: dst for src, dst in THRESHOLD_COLUMN_MAPPING.items() if src in df.columns})

    return [
        ThresholdEntry(
            category_id=_clean_id(row.get("category_id")),
            category_name=_clean_text(row.get("category_name")),
            cutoff_quantity=_to_float(row.get("cutoff_quantity")),
            cutoff_unit=_clean_text(row.get("cutoff_unit")),
        )
        for row in df.to_dict(orient="records")
        if _clean_id(row.get("category_id"))
    ]


def load_raw_records(path: Union[str, Path]) -> List[RawRecord]:
    return raw_records_from_dataframe(read_table(path))


def load_thresholds(path: Union[str, Path]) -> List[ThresholdEntry]:
    return thresholds_from_dataframe(read_table(path))
