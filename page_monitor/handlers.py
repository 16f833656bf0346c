# alert handlers: the output layer of the engine.

# each handler receives a consolidated AlertEvent and decides what to do with
# it. the engine's job ends once the event is handed over; formatting the email,
# sending it and retrying delivery all belong to the handler.

# to add a new output target, implement a class with:
#     async def handle(self, event: AlertEvent) -> None: ...
# and pass it into PageMonitor in orchestrator.py.

from typing import Protocol

from page_monitor.models import AlertEvent, format_dt

_R   = "\033[0m"
_RED = "\033[31m"


class AlertHandler(Protocol):
    async def handle(self, event: AlertEvent) -> None: ...


class ConsoleAlertHandler:
    """
    Emits one line per alert event to stdout.

    Format:
        [2026-10-18 09:30:00 UTC] acme | example.com | BROKEN=2 | /pricing (HTTP_500), /blog (Timeout) | To=ops@example.com

    Paths beyond _MAX_PATHS are summarised as "+N more" so a site-wide outage
    stays on one readable line.
    """

    _MAX_PATHS = 10

    async def handle(self, event: AlertEvent) -> None:
        print(self._format(event), flush=True)

    def _format(self, event: AlertEvent) -> str:
        shown = [f"{b.path} ({b.reason_code})" for b in event.broken_paths[: self._MAX_PATHS]]
        extra = len(event.broken_paths) - len(shown)
        if extra > 0:
            shown.append(f"+{extra} more")

        return (
            f"[{format_dt(event.cycle_timestamp)}] "
            f"{event.account_id} | "
            f"{event.domain} | "
            f"{_RED}BROKEN={len(event.broken_paths)}{_R} | "
            f"{', '.join(shown)} | "
            f"To={event.alert_email}"
        )

