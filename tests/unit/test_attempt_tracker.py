from order_pipeline.app.application.attempt_tracker import AttemptTracker


def test_get_defaults_to_zero_for_unknown_order():
    tracker = AttemptTracker()
    assert tracker.get("A1") == 0
    assert tracker.get("A1", 5) == 5
    assert "A1" not in tracker


def test_set_then_delete():
    tracker = AttemptTracker()
    tracker.set("A1", 2)
    assert tracker.get("A1") == 2
    assert "A1" in tracker
    assert len(tracker) == 1
    tracker.delete("A1")
    assert "A1" not in tracker
    assert len(tracker) == 0


def test_delete_unknown_is_noop():
    tracker = AttemptTracker()
    tracker.delete("missing")
    assert len(tracker) == 0
