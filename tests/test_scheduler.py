from __future__ import annotations

import threading
import time

from gdprkv.core.jobs.scheduler import JobSchedule, PeriodicJob

from .helpers.fakes import RecordingLogger


def test_overlapping_run_is_skipped():
    started = threading.Event()
    release = threading.Event()

    def slow():
        started.set()
        release.wait(5)
        return "done"

    job = PeriodicJob(name="slow", fn=slow, schedule=JobSchedule(enabled=False), logger=RecordingLogger())
    t = threading.Thread(target=job.run_now)
    t.start()
    assert started.wait(5)
    assert job.is_running()

    assert job.run_now() is None
    assert job.skipped == 1

    release.set()
    t.join(5)
    assert job.runs == 1
    assert job.last_result == "done"
    assert not job.is_running()


def test_disabled_job_does_not_start():
    calls = []
    job = PeriodicJob(name="off", fn=lambda: calls.append(1), schedule=JobSchedule(enabled=False, interval_seconds=0.01))
    job.start()
    time.sleep(0.05)
    job.stop()
    assert calls == []


def test_enabled_job_runs_periodically_and_survives_errors():
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")
        return len(calls)

    log = RecordingLogger()
    job = PeriodicJob(
        name="tick",
        fn=flaky,
        schedule=JobSchedule(enabled=True, interval_seconds=0.01, run_on_start=True),
        logger=log,
    )
    job.start()
    deadline = time.time() + 5
    while len(calls) < 3 and time.time() < deadline:
        time.sleep(0.01)
    job.stop()

    assert len(calls) >= 3
    assert any("boom" in w for w in log.warnings)
    assert not job.is_running()
