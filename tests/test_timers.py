import threading

from ghostroom.timers import TimerRegistry


def test_timer_fires_and_forgets_key() -> None:
    reg = TimerRegistry()
    fired = threading.Event()

    reg.schedule(("ROOM", "m1"), 0.01, fired.set)

    assert fired.wait(2.0)
    assert reg.pending() == 0


def test_reschedule_replaces_older_timer() -> None:
    reg = TimerRegistry()
    calls: list[str] = []
    done = threading.Event()

    reg.schedule("k", 5.0, lambda: calls.append("old"))

    def new() -> None:
        calls.append("new")
        done.set()

    reg.schedule("k", 0.01, new)

    assert done.wait(2.0)
    assert calls == ["new"]


def test_cancel_where_matches_room() -> None:
    reg = TimerRegistry()
    reg.schedule(("A", 1), 30.0, lambda: None)
    reg.schedule(("A", 2), 30.0, lambda: None)
    reg.schedule(("B", 1), 30.0, lambda: None)

    assert reg.cancel_where(lambda k: k[0] == "A") == 2
    assert reg.pending() == 1
    assert reg.cancel(("B", 1))
    assert not reg.cancel(("B", 1))
    assert reg.cancel_all() == 0


def test_failing_callback_does_not_stop_registry() -> None:
    reg = TimerRegistry()
    done = threading.Event()
    after = threading.Event()

    def boom() -> None:
        done.set()
        raise RuntimeError("boom")

    reg.schedule("k", 0.0, boom)
    assert done.wait(2.0)

    reg.schedule("k2", 0.0, after.set)
    assert after.wait(2.0)
