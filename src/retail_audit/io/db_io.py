from __future__ import annotations

import json
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Sequence
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from retail_audit.config import config
from retail_audit.data_models import AuditResult, RawRecord, ThresholdEntry


Base = declarative_base()

SESSION_STATUSES = ("uploading", "processing", "completed", "failed")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditSessionDB(Base):
    __tablename__ = "audit_sessions"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    session_name = Column(String, nullable=False, default="Audit Session")
    status = Column(String, nullable=False, default="uploading")
    raw_data_count = Column(Integer, default=0)
    results_count = Column(Integer, default=0)
    created_at = Column(DateTime, default=_utcnow)
    completed_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)


class RawAuditDataDB(Base):
    __tablename__ = "raw_audit_data"
    __table_args__ = (UniqueConstraint("session_id", "record_id"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String, nullable=False, index=True)
    record_id = Column(String, nullable=False)
    eto_ofr_display_id = Column(String, nullable=True)
    fk_glcat_mcat_id = Column(String, nullable=False, index=True)
    eto_ofr_glcat_mcat_name = Column(String, nullable=True)
    quantity = Column(Float, nullable=True)
    quantity_unit = Column(String, nullable=True)
    probable_order_value = Column(String, nullable=True)
    bl_segment = Column(String, nullable=True)
    bl_details = Column(Text, nullable=True)
    business_mcat_key = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=_utcnow)


class ThresholdDataDB(Base):
    __tablename__ = "threshold_data"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String, nullable=False, index=True)
    fk_glcat_mcat_id = Column(String, nullable=False, index=True)
    glcat_mcat_name = Column(String, nullable=True)
    leap_retail_qty_cutoff = Column(Float, nullable=True)
    gl_unit_name = Column(String, nullable=True)
    created_at = Column(DateTime, default=_utcnow)


class AuditResultDB(Base):
    __tablename__ = "audit_results"
    __table_args__ = (UniqueConstraint("session_id", "raw_data_id"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String, nullable=False, index=True)
    raw_data_id = Column(String, nullable=False)
    eto_ofr_display_id = Column(String, nullable=False)
    fk_glcat_mcat_id = Column(String, nullable=True)
    category_name = Column(String, nullable=True)
    quantity = Column(String, nullable=True)  # как пришло из выгрузки, может быть мусором
    quantity_unit = Column(String, nullable=True)
    bl_segment = Column(String, nullable=True)
    business_mcat_key = Column(Integer, nullable=True)
    mcat_type = Column(String, nullable=True)

    # Indiamart-логика
    indiamart_audit_outcome = Column(String, nullable=True)
    threshold_available = Column(Boolean, nullable=True)
    threshold_value = Column(String, nullable=True)
    indiamart_category = Column(String, nullable=True)
    indiamart_reason = Column(Text, nullable=True)

    # Advisory-оценка LLM
    llm_bl_type = Column(String, nullable=True)
    llm_threshold_value = Column(String, nullable=True)
    llm_threshold_reason = Column(Text, nullable=True)
    llm_evaluation_signals = Column(Text, nullable=True)  # JSON
    llm_conflict_notes = Column(Text, nullable=True)

    evaluation_rationale = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_utcnow)


def build_engine(database_url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    url = make_url(database_url or config.database.url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, echo=config.database.echo if echo is None else echo, future=True)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(engine)


@contextmanager
def get_session(session_factory: sessionmaker) -> Iterator[Session]:
    session: Session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------- Сессии аудита ----------


def create_audit_session(session: Session, session_name: Optional[str] = None) -> AuditSessionDB:
    """
    Создаёт новую сессию аудита в статусе uploading.
    """
    audit_session = AuditSessionDB(
        id=str(uuid4()),
        session_name=session_name or f"Audit - {_utcnow():%Y-%m-%d %H:%M:%S}",
        status="uploading",
    )
    session.add(audit_session)
    session.flush()
    return audit_session


def update_session_status(
    session: Session,
    session_id: str,
    status: str,
    error_message: Optional[str] = None,
    results_count: Optional[int] = None,
) -> None:
    if status not in SESSION_STATUSES:
        raise ValueError(f"Unknown session status: {status}")

    audit_session: AuditSessionDB | None = session.get(AuditSessionDB, session_id)
    if audit_session is None:
        raise LookupError(f"Audit session {session_id} not found")

    audit_session.status = status
    audit_session.error_message = error_message
    if results_count is not None:
        audit_session.results_count = results_count
    if status in ("completed", "failed"):
        audit_session.completed_at = _utcnow()


# ---------- Входные данные ----------


def _float_or_none(value: object) -> Optional[float]:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def save_raw_records(session: Session, session_id: str, records: Sequence[RawRecord]) -> int:
    session.add_all(
        RawAuditDataDB(
            session_id=session_id,
            record_id=r.id,
            eto_ofr_display_id=r.buylead_id,
            fk_glcat_mcat_id=r.category_id,
            eto_ofr_glcat_mcat_name=r.category_name,
            quantity=_float_or_none(r.quantity),
            quantity_unit=r.quantity_unit,
            probable_order_value=r.probable_order_value,
            bl_segment=r.segment_label,
            bl_details=r.details,
            business_mcat_key=r.business_category_override,
        )
        for r in records
    )
    audit_session: AuditSessionDB | None = session.get(AuditSessionDB, session_id)
    if audit_session is not None:
        audit_session.raw_data_count = len(records)
    return len(records)


def save_threshold_entries(session: Session, session_id: str, entries: Sequence[ThresholdEntry]) -> int:
    session.add_all(
        ThresholdDataDB(
            session_id=session_id,
            fk_glcat_mcat_id=t.category_id,
            glcat_mcat_name=t.category_name,
            leap_retail_qty_cutoff=_float_or_none(t.cutoff_quantity),
            gl_unit_name=t.cutoff_unit,
        )
        for t in entries
    )
    return len(entries)


def load_raw_records(session: Session, session_id: str) -> List[RawRecord]:
    rows = (
        session.query(RawAuditDataDB)
        .filter(RawAuditDataDB.session_id == session_id)
        .order_by(RawAuditDataDB.id)
        .all()
    )
    return [
        RawRecord(
            id=row.record_id,
            display_id=row.eto_ofr_display_id,
            category_id=row.fk_glcat_mcat_id,
            category_name=row.eto_ofr_glcat_mcat_name or "",
            quantity=row.quantity if row.quantity is not None else 0,
            quantity_unit=row.quantity_unit or "",
            probable_order_value=row.probable_order_value or "",
            segment_label=row.bl_segment or "",
            details=row.bl_details or "",
            business_category_override=row.business_mcat_key,
        )
        for row in rows
    ]


def load_threshold_entries(session: Session, session_id: str) -> List[ThresholdEntry]:
    rows = (
        session.query(ThresholdDataDB)
        .filter(ThresholdDataDB.session_id == session_id)
        .order_by(ThresholdDataDB.id)
        .all()
    )
    return [
        ThresholdEntry(
            category_id=row.fk_glcat_mcat_id,
            category_name=row.glcat_mcat_name or "",
            cutoff_quantity=row.leap_retail_qty_cutoff or 0.0,
            cutoff_unit=row.gl_unit_name or "",
        )
        for row in rows
    ]


# ---------- Результаты ----------


def audit_result_to_db(result: AuditResult) -> AuditResultDB:
    row = result.to_row()
    signals = row.pop("llm_evaluation_signals")
    row["llm_evaluation_signals"] = json.dumps(signals, ensure_ascii=False) if signals else None
    row["quantity"] = None if row["quantity"] is None else str(row["quantity"])
    return AuditResultDB(**row)


def save_audit_results(session: Session, results: Sequence[AuditResult]) -> int:
    """
    Пакетная запись результатов. Повторная запись того же (session_id, raw_data_id)
    упадёт на уникальном ключе: результат создаётся один раз.
    """
    session.add_all(audit_result_to_db(r) for r in results)
    session.flush()
    return len(results)


def get_audit_results(session: Session, session_id: str) -> List[AuditResultDB]:
    return (
        session.query(AuditResultDB)
        .filter(AuditResultDB.session_id == session_id)
        .order_by(AuditResultDB.id)
        .all()
    )
