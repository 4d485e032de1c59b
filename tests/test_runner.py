# tests/test_runner.py
import json
import re
import sys
import types

import pytest

from service import logging_utils, runner


@pytest.fixture
def fake_module(monkeypatch):
    """Register an importable module whose run() records its kwargs."""
    calls = []
    mod = types.ModuleType("jw_fake_module")

    def run(**kwargs):
        calls.append(kwargs)
        if kwargs.get("explode"):
            raise RuntimeError("kaboom")
        return {"found": 1, "message": "1 found"}

    mod.run = run
    monkeypatch.setitem(sys.modules, "jw_fake_module", mod)
    return calls


def _activity_records():
    with open(logging_utils.get_activity_log_path(), encoding="utf-8") as f:
        return [json.loads(line) for line in f]


def test_kwargs_normalization(monkeypatch):
    monkeypatch.setenv("JW_DB", "/tmp/jw.db")
    out = runner._normalize_kwargs_types({
        "sqlite_path_env": "JW_DB",
        "sites_path_env": "JW_UNSET_VAR",
        "headless": "false",
        "skip_network": "yes",
        "max_age_days": "1",
        "site_delay_seconds": "0.5",
        "disabled": "null",
        "extra": '{"a": 1}',
        "renderer": "static",
        "already": 3,
    })
    assert out == {
        "sqlite_path": "/tmp/jw.db",
        "headless": False,
        "skip_network": True,
        "max_age_days": 1,
        "site_delay_seconds": 0.5,
        "disabled": None,
        "extra": {"a": 1},
        "renderer": "static",
        "already": 3,
    }


def test_run_module_once_returns_meta_and_logs(fake_module):
    meta, run_id = runner.run_module_once("jw_fake_module", kwargs={"renderer": "static"}, job_context={"job_id": "j1"})

    assert meta == {"found": 1, "message": "1 found"}
    assert re.match(r"^[a-f0-9]{32}$", run_id)
    assert fake_module == [{"renderer": "static"}]

    (rec,) = _activity_records()
    assert rec["ok"] is True
    assert rec["run_id"] == run_id
    assert rec["context"]["job_id"] == "j1"
    assert rec["meta"]["found"] == 1


def test_run_module_once_reraises_and_logs_failure(fake_module):
    with pytest.raises(RuntimeError, match="kaboom"):
        runner.run_module_once("jw_fake_module", kwargs={"explode": True})

    (rec,) = _activity_records()
    assert rec["ok"] is False
    assert rec["meta"]["exception_type"] == "RuntimeError"


def test_module_without_run_is_rejected(monkeypatch):
    monkeypatch.setitem(sys.modules, "jw_no_run", types.ModuleType("jw_no_run"))
    with pytest.raises(AttributeError):
        runner.run_module_once("jw_no_run")


def test_default_module_runs_crawler_in_dry_mode(sites_csv, tmp_path):
    meta, _ = runner.run_module_once(
        kwargs={"sites_path": sites_csv, "sqlite_path": str(tmp_path / "x.db"), "skip_network": "true"},
    )
    assert meta["found"] == 0
    assert meta["sites_total"] == 2
    assert "0 found" in meta["message"]
