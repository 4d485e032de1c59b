# tests/test_scheduler.py
from datetime import datetime, timedelta, timezone
from unittest import mock

import pytest
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from service import scheduler
from service.scheduler import _build_trigger


def _fire_times(trigger, start, count=3):
    """Next `count` fire times strictly after `start`."""
    out = []
    prev, now = None, start
    for _ in range(count):
        nxt = trigger.get_next_fire_time(prev, now)
        if nxt is None:
            break
        out.append(nxt)
        prev, now = nxt, nxt + timedelta(microseconds=1)
    return out


# ----------------------------------------------------------------------
# Trigger shapes
# ----------------------------------------------------------------------
def test_interval_every_six_hours():
    trig = _build_trigger({"interval": {"hours": 6}}, "UTC")
    assert isinstance(trig, IntervalTrigger)
    assert trig.interval == timedelta(hours=6)


def test_cron_object_fires_on_weekdays():
    trig = _build_trigger({"cron": {"minute": 30, "hour": 8, "day_of_week": "mon-fri"}}, "UTC")
    # 2099-01-02 is a Friday
    start = datetime(2099, 1, 2, 9, 0, tzinfo=timezone.utc)
    times = _fire_times(trig, start, count=2)
    assert times == [
        datetime(2099, 1, 5, 8, 30, tzinfo=timezone.utc),  # Monday
        datetime(2099, 1, 6, 8, 30, tzinfo=timezone.utc),
    ]


def test_cron_string():
    trig = _build_trigger({"cron": "0 */6 * * *"}, "UTC")
    assert isinstance(trig, CronTrigger)
    start = datetime(2099, 1, 1, 1, 0, tzinfo=timezone.utc)
    assert _fire_times(trig, start, count=2) == [
        datetime(2099, 1, 1, 6, 0, tzinfo=timezone.utc),
        datetime(2099, 1, 1, 12, 0, tzinfo=timezone.utc),
    ]


@pytest.mark.parametrize("run_at", ["2099-01-01T00:00:00Z", {"run_at": "2099-01-01T00:00:00+00:00"}])
def test_date_iso(run_at):
    trig = _build_trigger({"date": run_at}, "UTC")
    assert isinstance(trig, DateTrigger)
    assert trig.run_date == datetime(2099, 1, 1, tzinfo=timezone.utc)


def test_date_epoch_seconds():
    ts = int(datetime(2099, 1, 1, tzinfo=timezone.utc).timestamp())
    trig = _build_trigger({"date": {"run_at": ts}}, "UTC")
    assert trig.run_date == datetime(2099, 1, 1, tzinfo=timezone.utc)


def test_date_without_offset_uses_scheduler_tz():
    trig = _build_trigger({"date": "2099-06-01T09:00:00"}, "America/Argentina/Buenos_Aires")
    assert trig.run_date.utcoffset() == timedelta(hours=-3)


def test_daily_time_string_shorthand():
    trig = _build_trigger({"daily_time": "07:45"}, "UTC")
    start = datetime(2099, 1, 1, 8, 0, tzinfo=timezone.utc)
    assert _fire_times(trig, start, count=1) == [datetime(2099, 1, 2, 7, 45, tzinfo=timezone.utc)]


def test_daily_time_multiple_times_are_exact_pairs():
    trig = _build_trigger({"daily_time": {"time": ["09:00", "18:30", "09:00"]}}, "UTC")
    assert isinstance(trig, OrTrigger)
    start = datetime(2099, 1, 1, 0, 0, tzinfo=timezone.utc)
    hm = [(t.hour, t.minute) for t in _fire_times(trig, start, count=3)]
    assert hm == [(9, 0), (18, 30), (9, 0)]


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"interval": {"minutes": 0}},
        {"interval": {"minutes": -5}},
        {"interval": {"fortnights": 1}},
        {"cron": "*/15 * *"},
        {"cron": {"minute": 0, "weekday": 1}},
        {"date": {}},
        {"date": "next tuesday"},
        {"daily_time": {}},
        {"daily_time": "25:00"},
        {"interval": {"hours": 1}, "cron": "0 * * * *"},
        "not a dict",
    ],
)
def test_invalid_triggers_raise(payload):
    with pytest.raises(ValueError):
        _build_trigger(payload, "UTC")


# ----------------------------------------------------------------------
# Job spec & wrapper
# ----------------------------------------------------------------------
def test_make_job_spec_defaults():
    spec = scheduler._make_job_spec(
        {"id": "crawl", "module": "modules.job_watch.main", "trigger": {"interval": {"hours": 6}}},
        default_job_defaults={"coalesce": True, "max_instances": 1},
        tz="UTC",
    )
    assert spec.id == "crawl"
    assert spec.kwargs == {}
    assert spec.max_instances == 1
    assert spec.coalesce is True
    assert spec.timeout_sec is None


def test_job_wrapper_runs_module_with_scheduled_trigger(monkeypatch):
    spec = scheduler._make_job_spec(
        {
            "id": "crawl",
            "module": "modules.job_watch.main",
            "trigger": {"interval": {"hours": 6}},
            "kwargs": {"renderer": "static"},
            "timeout_sec": 900,
        },
        default_job_defaults={"coalesce": True, "max_instances": 1},
        tz="UTC",
    )
    fake_sched = mock.Mock()
    scheduler._add_job(fake_sched, spec)
    wrapper = fake_sched.add_job.call_args.kwargs["func"]

    run = mock.Mock(return_value=({"message": "1 found"}, "abc"))
    monkeypatch.setattr(scheduler.runner, "run_module_once", run)
    wrapper()

    args, kwargs = run.call_args
    assert args == ("modules.job_watch.main",)
    assert kwargs["kwargs"] == {"renderer": "static"}
    assert kwargs["trigger_type"] == "scheduled"
    assert kwargs["timeout_sec"] == 900
    assert kwargs["job_context"]["job_id"] == "crawl"


def test_job_wrapper_survives_failed_run(monkeypatch):
    spec = scheduler._make_job_spec(
        {"id": "crawl", "module": "modules.job_watch.main", "trigger": {"interval": {"hours": 6}}},
        default_job_defaults={"coalesce": True, "max_instances": 1},
        tz="UTC",
    )
    fake_sched = mock.Mock()
    scheduler._add_job(fake_sched, spec)
    wrapper = fake_sched.add_job.call_args.kwargs["func"]

    monkeypatch.setattr(scheduler.runner, "run_module_once", mock.Mock(side_effect=RuntimeError("boom")))
    wrapper()  # must not raise


def test_start_registers_jobs_and_stops(write_schedule_config):
    path = write_schedule_config({
        "timezone": "UTC",
        "jobs": [
            {"id": "crawl", "module": "modules.job_watch.main", "trigger": {"interval": {"hours": 6}}},
            {"id": "nightly", "module": "modules.job_watch.main", "trigger": {"daily_time": "03:00"}},
        ],
    })
    ctl = scheduler.start(config_path=path)
    try:
        assert sorted(ctl.get_job_ids()) == ["crawl", "nightly"]
    finally:
        ctl.stop()
    assert ctl.join(timeout=1)


def test_job_wrapper_records_crawl_counters(monkeypatch):
    import json

    from service import logging_utils

    spec = scheduler._make_job_spec(
        {"id": "crawl", "module": "modules.job_watch.main", "trigger": {"interval": {"hours": 6}}},
        default_job_defaults={"coalesce": True, "max_instances": 1},
        tz="UTC",
    )
    fake_sched = mock.Mock()
    scheduler._add_job(fake_sched, spec)
    wrapper = fake_sched.add_job.call_args.kwargs["func"]

    meta = {"found": 4, "saved": 2, "skipped": 1, "incomplete": 0, "errors": 1, "message": "4 found"}
    monkeypatch.setattr(scheduler.runner, "run_module_once", mock.Mock(return_value=(meta, "rid")))
    wrapper()

    with open(logging_utils.get_activity_log_path(), encoding="utf-8") as f:
        (rec,) = [json.loads(line) for line in f]
    assert rec["event"] == "job_run"
    assert rec["fields"]["status"] == "ok"
    assert rec["fields"]["run_id"] == "rid"
    assert rec["fields"]["found"] == 4
    assert rec["fields"]["errors"] == 1
