import threading

import pytest

from ticket_dispatcher.core.logging import current_job_id
from ticket_dispatcher.queue import DrainLoop, Stage
from ticket_dispatcher.queue import drain as drain_mod


@pytest.fixture
def no_sleep(monkeypatch):
    sleeps = []
    monkeypatch.setattr(drain_mod.time, "sleep", lambda s: sleeps.append(s))
    return sleeps


def _loop(store, tracker, render, **kwargs):
    kwargs.setdefault("inter_job_delay", 0)
    return DrainLoop(store, tracker, render, lambda: {"printer_ip": "10.0.0.5"}, **kwargs)


def test_fifo_order_and_completion(store, tracker, manager):
    for job_id in ("1700000000002-c", "1700000000000-a", "1700000000001-b"):
        manager.enqueue(job_id, {"id": job_id})

    printed = []

    def render(config, payload):
        assert config["printer_ip"] == "10.0.0.5"
        printed.append(payload["id"])
        return True

    completed = []
    report = _loop(store, tracker, render, on_job_completed=completed.append).drain()

    assert printed == ["1700000000000-a", "1700000000001-b", "1700000000002-c"]
    assert completed == printed
    assert (report.listed, report.claimed, report.completed, report.failed) == (3, 3, 3, 0)
    assert store.list(Stage.PENDING) == [] and store.list(Stage.IN_FLIGHT) == []
    snap = tracker.snapshot()
    assert (snap.completed, snap.failed, snap.total) == (3, 0, 0)


def test_failure_does_not_block_later_jobs(store, tracker, manager):
    for job_id in ("j1", "j2", "j3"):
        manager.enqueue(job_id, {"id": job_id})

    def render(config, payload):
        if payload["id"] == "j2":
            raise ConnectionError("printer offline")
        return True

    failures = []
    report = _loop(store, tracker, render, on_job_failed=lambda j, e: failures.append((j, e))).drain()

    assert (report.completed, report.failed) == (2, 1)
    assert failures == [("j2", "printer offline")]
    assert store.list(Stage.FAILED) == ["j2"]
    assert store.read(Stage.FAILED, "j2") == {"id": "j2"}
    assert store.read_error("j2")["error"] == "printer offline"
    snap = tracker.snapshot()
    assert (snap.completed, snap.failed, snap.pending, snap.processing) == (2, 1, 0, 0)


def test_falsy_render_result_is_a_failure(store, tracker, manager):
    manager.enqueue("j1", {})
    report = _loop(store, tracker, lambda c, p: False).drain()
    assert report.failed == 1
    assert store.read_error("j1")["error"] == "printing failed"


def test_malformed_job_goes_to_failed(store, tracker):
    (store.stage_dir(Stage.PENDING) / "bad.json").write_text("{oops")
    tracker.reconcile()
    rendered = []

    report = _loop(store, tracker, lambda c, p: rendered.append(p) or True).drain()

    assert rendered == []
    assert report.failed == 1
    assert store.list(Stage.FAILED) == ["bad"]


def test_render_timeout_parks_job(store, tracker, manager):
    manager.enqueue("slow", {})
    release = threading.Event()

    def render(config, payload):
        release.wait(5)
        return True

    try:
        report = _loop(store, tracker, render, render_timeout=0.05).drain()
    finally:
        release.set()

    assert report.failed == 1
    assert store.list(Stage.FAILED) == ["slow"]
    assert "did not finish" in store.read_error("slow")["error"]


def test_timed_out_render_holds_the_printer(store, tracker, manager):
    manager.enqueue("j1", {"n": 1})
    manager.enqueue("j2", {"n": 2})
    release = threading.Event()
    lock = threading.Lock()
    active = [0]
    peak = []
    printed = []

    def render(config, payload):
        with lock:
            active[0] += 1
            peak.append(active[0])
        try:
            if payload["n"] == 1:
                release.wait(5)
            printed.append(payload["n"])
            return True
        finally:
            with lock:
                active[0] -= 1

    loop = _loop(store, tracker, render, render_timeout=0.1)
    try:
        report = loop.drain()
        assert (report.failed, report.completed, report.deferred) == (1, 0, 1)
        assert store.list(Stage.PENDING) == ["j2"]
    finally:
        release.set()

    report = loop.drain()
    assert report.completed == 1
    assert printed == [1, 2]
    assert max(peak) == 1


def test_render_runs_with_job_context(store, tracker, manager):
    manager.enqueue("1700000000000-a", {})
    seen = []

    def render(config, payload):
        seen.append(current_job_id())
        return True

    assert _loop(store, tracker, render, render_timeout=5).drain().completed == 1
    assert seen == ["1700000000000-a"]


def test_only_one_drain_at_a_time(store, tracker, manager):
    manager.enqueue("j1", {})
    entered = threading.Event()
    release = threading.Event()

    def render(config, payload):
        entered.set()
        release.wait(5)
        return True

    loop = _loop(store, tracker, render)
    results = []
    worker = threading.Thread(target=lambda: results.append(loop.drain()))
    worker.start()
    assert entered.wait(5)

    assert loop.is_draining
    assert loop.drain() is None

    release.set()
    worker.join(5)
    assert results[0].completed == 1
    assert not loop.is_draining


def test_jobs_enqueued_mid_batch_wait_for_next_drain(store, tracker, manager):
    manager.enqueue("j1", {})
    printed = []

    def render(config, payload):
        printed.append(payload.get("n"))
        if len(printed) == 1:
            manager.enqueue("j2", {"n": 2})
        return True

    loop = _loop(store, tracker, render)
    assert loop.drain().completed == 1
    assert store.list(Stage.PENDING) == ["j2"]
    assert loop.drain().completed == 1
    assert printed == [None, 2]


def test_vanished_job_is_skipped(store, tracker, manager, monkeypatch):
    manager.enqueue("j1", {})
    manager.enqueue("j2", {})
    real_list = store.list

    def _list(stage):
        ids = real_list(stage)
        if stage is Stage.PENDING:
            # an operator deletes j1 between the listing and the claim
            store.remove(Stage.PENDING, "j1")
        return ids

    monkeypatch.setattr(store, "list", _list)
    report = _loop(store, tracker, lambda c, p: True).drain()

    assert (report.listed, report.skipped, report.completed) == (2, 1, 1)
    assert tracker.pending_ids() == []


def test_callback_errors_are_swallowed(store, tracker, manager):
    manager.enqueue("j1", {})
    manager.enqueue("j2", {})

    def boom(*args):
        raise RuntimeError("webhook down")

    report = _loop(store, tracker, lambda c, p: True, on_job_completed=boom).drain()
    assert report.completed == 2


def test_config_error_aborts_without_claiming(store, tracker, manager):
    manager.enqueue("j1", {})

    def provider():
        raise OSError("config unreadable")

    report = DrainLoop(store, tracker, lambda c, p: True, provider, inter_job_delay=0).drain()
    assert report.claimed == 0
    assert store.list(Stage.PENDING) == ["j1"]


def test_inter_job_delay(store, tracker, manager, no_sleep):
    manager.enqueue("j1", {})
    manager.enqueue("j2", {})
    _loop(store, tracker, lambda c, p: True, inter_job_delay=0.5).drain()
    assert no_sleep == [0.5, 0.5]


def test_empty_queue_is_a_noop(store, tracker):
    report = _loop(store, tracker, lambda c, p: True).drain()
    assert report.listed == 0
    assert tracker.snapshot().completed == 0
