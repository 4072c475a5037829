import threading

from ticket_dispatcher.queue import QueueSnapshot, QueueTracker, Stage


def test_snapshot_shape(tracker):
    assert tracker.snapshot().to_dict() == {
        "pending": 0,
        "processing": 0,
        "completed": 0,
        "failed": 0,
        "total": 0,
        "enqueued": 0,
    }


def test_reconcile_matches_disk(store, tracker):
    for job_id in ("b", "a", "c"):
        store.write(Stage.PENDING, job_id, {})
    store.write(Stage.IN_FLIGHT, "d", {})
    store.write(Stage.FAILED, "e", {})

    snap = tracker.reconcile()
    assert snap is not None
    on_disk = len(store.list(Stage.PENDING)) + len(store.list(Stage.IN_FLIGHT))
    assert snap.pending + snap.processing == on_disk == 4
    assert tracker.pending_ids() == ["a", "b", "c"]
    assert tracker.in_flight_ids() == ["d"]

    # someone removes a file by hand; reconcile heals the cache
    store.remove(Stage.PENDING, "b")
    assert tracker.reconcile().pending == 2


def test_no_loss_after_restart(store, manager):
    ids = [f"17000000000{i:02d}-x" for i in range(5)]
    for job_id in ids:
        assert manager.enqueue(job_id, {"i": job_id}).success

    # crash: the in-memory tracker is gone, a new one starts from nothing
    fresh = QueueTracker(store)
    assert fresh.snapshot().pending == 0
    fresh.reconcile()
    assert fresh.pending_ids() == ids


def test_lifecycle_counters(tracker):
    tracker.register_enqueued("a")
    tracker.register_enqueued("b")
    tracker.claim("a")
    assert tracker.snapshot() == QueueSnapshot(pending=1, processing=1, total=2, enqueued=2)

    tracker.mark_completed("a")
    tracker.claim("b")
    tracker.mark_failed("b", "paper out")
    assert tracker.snapshot() == QueueSnapshot(completed=1, failed=1, enqueued=2)


def test_register_and_claim_are_idempotent_on_membership(tracker):
    tracker.register_enqueued("a")
    tracker.register_enqueued("a")
    assert tracker.pending_ids() == ["a"]
    assert tracker.snapshot().enqueued == 2

    tracker.claim("a")
    tracker.claim("a")
    assert tracker.in_flight_ids() == ["a"]
    assert tracker.pending_ids() == []


def test_listeners_notified_and_isolated(tracker):
    seen = []

    def _boom(snap):
        raise RuntimeError("listener bug")

    tracker.subscribe(_boom)
    unsubscribe = tracker.subscribe(seen.append)

    tracker.register_enqueued("a")
    tracker.claim("a")
    tracker.mark_completed("a")

    assert [s.pending for s in seen] == [1, 0, 0]
    assert [s.processing for s in seen] == [0, 1, 0]
    assert seen[-1].completed == 1

    unsubscribe()
    tracker.register_enqueued("b")
    assert len(seen) == 3
    assert tracker.listener_count == 1


def test_reconcile_notifies(store, tracker):
    seen = []
    tracker.subscribe(seen.append)
    store.write(Stage.PENDING, "a", {})
    tracker.reconcile()
    assert seen and seen[-1].pending == 1


def test_forget_drops_without_counting(tracker):
    tracker.register_enqueued("a")
    tracker.forget("a")
    snap = tracker.snapshot()
    assert snap.pending == 0 and snap.completed == 0 and snap.failed == 0


def test_registration_during_reconcile_is_not_lost(store, tracker, manager, monkeypatch):
    assert manager.enqueue("1700000000000-a", {}).success
    seen = []
    tracker.subscribe(seen.append)
    real_list = store.list
    submitter = []

    def _list(stage):
        ids = real_list(stage)
        if stage is Stage.PENDING and not submitter:
            # a request lands between the directory listing and the state swap
            t = threading.Thread(target=lambda: manager.enqueue("1700000000001-b", {}))
            submitter.append(t)
            t.start()
            t.join(0.2)
            assert t.is_alive()
        return ids

    monkeypatch.setattr(store, "list", _list)
    tracker.reconcile()
    submitter[0].join(5)

    assert tracker.pending_ids() == ["1700000000000-a", "1700000000001-b"]
    assert [s.pending for s in seen] == [1, 2]
