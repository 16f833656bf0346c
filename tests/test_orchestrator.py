from __future__ import annotations

import asyncio

import pytest

from conftest import CollectingHandler, ScriptedTransport
from page_monitor.errors import ConfigValidationError
from page_monitor.orchestrator import PageMonitor


def _accounts() -> list[dict]:
    return [
        {
            "account_id": "acme",
            "domain": "acme.test",
            "plan": "starter",
            "frequency": "Every 30 minutes",
            "paths": ["/", "/pricing"],
            "alert_email": "ops@acme.test",
        },
        {
            "account_id": "globex",
            "domain": "globex.test",
            "plan": "free",
            "frequency": "Every 6 hours",
            "paths": ["/"],
            "alert_email": "web@globex.test",
        },
    ]


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


def test_invalid_account_is_rejected_before_anything_runs() -> None:
    bad = _accounts()
    bad[1]["frequency"] = "Every 15 minutes"
    with pytest.raises(ConfigValidationError):
        PageMonitor(bad, handler=CollectingHandler(), transport=ScriptedTransport())


@pytest.mark.asyncio
async def test_runs_all_accounts_and_exposes_results() -> None:
    handler = CollectingHandler()
    transport = ScriptedTransport({"/pricing": [500]})
    monitor = PageMonitor(_accounts(), handler=handler, transport=transport, scan_interval=0.01)

    runner = asyncio.create_task(monitor.run())
    await _wait_for(lambda: monitor.summary("acme") is not None and monitor.summary("globex") is not None)

    assert len(handler.events) == 1
    event = handler.events[0]
    assert event.account_id == "acme"
    assert event.domain == "acme.test"
    assert [b.path for b in event.broken_paths] == ["/pricing"]

    history = monitor.history_for("acme", "/pricing")
    assert history[0].reason_code == "HTTP_500"
    summary = monitor.summary("acme")
    assert (summary.total, summary.broken) == (2, 1)
    assert [p for p, _ in monitor.next_checks("globex")] == ["/"]

    # mid-run update: new path is picked up by the next scan
    monitor.update_account({**_accounts()[0], "paths": ["/", "/pricing", "/blog"]})
    await _wait_for(lambda: bool(monitor.history_for("acme", "/blog")))

    with pytest.raises(ConfigValidationError):
        monitor.update_account({**_accounts()[0], "paths": ["/a", "/a"]})

    monitor.remove_account("globex", purge_history=True)
    assert monitor.summary("globex") is None
    assert monitor.history_for("globex", "/") == []

    monitor.stop()
    await asyncio.wait_for(runner, timeout=2.0)
    assert all(task.done() for task in monitor.tasks)


@pytest.mark.asyncio
async def test_account_added_while_running_gets_its_own_scheduler() -> None:
    handler = CollectingHandler()
    monitor = PageMonitor([], handler=handler, transport=ScriptedTransport(default=502), scan_interval=0.01)

    runner = asyncio.create_task(monitor.run())
    await asyncio.sleep(0.02)
    monitor.update_account(_accounts()[1])
    await _wait_for(lambda: bool(handler.events))
    assert handler.events[0].broken_paths[0].reason_code == "HTTP_502"

    monitor.stop()
    await asyncio.wait_for(runner, timeout=2.0)
