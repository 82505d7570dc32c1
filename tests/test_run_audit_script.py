# tests/test_run_audit_script.py
import asyncio
from unittest.mock import AsyncMock

import pandas as pd
import pytest

from retail_audit.io.db_io import AuditSessionDB, build_engine, build_session_factory, get_audit_results, get_session
from retail_audit.llm_client.base import LLMClient, LLMResponse
from retail_audit.scripts import run_audit as script


class DummyLLMClient(LLMClient):
    async def complete(self, system_prompt, user_prompt, *, temperature=0.0, max_tokens=None, json_mode=True):
        raise NotImplementedError


def _write_inputs(tmp_path):
    raw = tmp_path / "raw.csv"
    raw.write_text(
        "eto_ofr_display_id,fk_glcat_mcat_id,eto_ofr_glcat_mcat_name,quantity,quantity_unit,bl_segment,bl_details\n"
        "9001,101,Rice,5,kg,Retail - Indian,home\n"
        "9002,101,Rice,2,tonne,Retail - Indian,restaurant\n",
        encoding="utf-8",
    )
    thresholds = tmp_path / "thresholds.csv"
    thresholds.write_text(
        "fk_glcat_mcat_id,glcat_mcat_name,leap_retail_qty_cutoff,gl_unit_name\n101,Rice,100,kg\n",
        encoding="utf-8",
    )
    return raw, thresholds


def test_audit_files_persists_and_exports(tmp_path):
    raw, thresholds = _write_inputs(tmp_path)
    database_url = f"sqlite:///{tmp_path / 'db' / 'audit.db'}"
    output = tmp_path / "results.csv"

    client = DummyLLMClient()
    client.complete = AsyncMock(return_value=LLMResponse(content='{"bl_type": "Retail", "reasoning": "ok"}'))

    results = asyncio.run(
        script.audit_files(raw, thresholds, "Audit instructions", database_url, output, llm_client=client)
    )

    assert [r.verdict.category_label for r in results] == ["Retail Correctly Marked", "Retail Wrongly Marked"]
    session_id = results[0].session_id

    factory = build_session_factory(build_engine(database_url))
    with get_session(factory) as session:
        audit_session = session.get(AuditSessionDB, session_id)
        assert audit_session.status == "completed"
        assert audit_session.raw_data_count == 2
        assert audit_session.results_count == 2
        assert len(get_audit_results(session, session_id)) == 2

    assert len(pd.read_csv(output)) == 2


def test_main_returns_error_code_without_api_key(tmp_path, monkeypatch):
    raw, thresholds = _write_inputs(tmp_path)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    code = script.main([str(raw), str(thresholds), "--database-url", f"sqlite:///{tmp_path / 'a.db'}"])

    assert code == 1


def test_session_marked_failed_when_saving_results_fails(tmp_path, monkeypatch):
    raw, thresholds = _write_inputs(tmp_path)
    database_url = f"sqlite:///{tmp_path / 'audit.db'}"

    client = DummyLLMClient()
    client.complete = AsyncMock(return_value=LLMResponse(content='{"bl_type": "Retail", "reasoning": "ok"}'))

    def broken_save(session, results):
        raise RuntimeError("disk full")

    monkeypatch.setattr(script, "save_audit_results", broken_save)

    with pytest.raises(RuntimeError, match="disk full"):
        asyncio.run(script.audit_files(raw, thresholds, "Audit instructions", database_url, llm_client=client))

    factory = build_session_factory(build_engine(database_url))
    with get_session(factory) as session:
        (audit_session,) = session.query(AuditSessionDB).all()
        assert audit_session.status == "failed"
        assert audit_session.error_message == "disk full"
