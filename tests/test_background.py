from __future__ import annotations

import logging
import threading

from app.services.background import get_dispatcher, run_inline, spawn_thread


def test_dispatcher_selection() -> None:
    assert get_dispatcher("inline") is run_inline
    assert get_dispatcher(" INLINE ") is run_inline
    for mode in ("thread", "", "bogus"):
        assert get_dispatcher(mode) is spawn_thread


def test_run_inline_runs_before_returning() -> None:
    seen = []
    run_inline(seen.append, "done", name="inline-test")
    assert seen == ["done"]


def test_spawn_thread_runs_detached_and_named() -> None:
    gate = threading.Event()
    finished = threading.Event()
    names = []

    def task(value):
        names.append((threading.current_thread().name, threading.current_thread().daemon, value))
        gate.wait(5)
        finished.set()

    spawn_thread(task, 42, name="dispatch-test")

    # The caller is back before the task is allowed to finish.
    assert not finished.is_set()
    gate.set()
    assert finished.wait(5)
    assert names == [("dispatch-test", True, 42)]


def test_spawn_thread_logs_escaping_errors(caplog) -> None:
    def explode():
        raise RuntimeError("boom")

    with caplog.at_level(logging.ERROR, logger="app.services.background"):
        spawn_thread(explode, name="crash-test")
        for thread in threading.enumerate():
            if thread.name == "crash-test":
                thread.join(5)

    assert any("crash-test" in record.getMessage() for record in caplog.records)
