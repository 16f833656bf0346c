import asyncio
import logging
import platform
import signal
import sys

from page_monitor.config import ACCOUNTS
from page_monitor.errors import ConfigValidationError
from page_monitor.orchestrator import PageMonitor

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
    handlers=[logging.StreamHandler(sys.stdout)],
)
log = logging.getLogger("main")


def build_monitor(accounts: list[dict]) -> PageMonitor | None:
    """Load each account on its own; an invalid one is logged and skipped."""
    monitor = PageMonitor([])
    loaded = 0
    for raw in accounts:
        try:
            monitor.update_account(raw)
            loaded += 1
        except ConfigValidationError as exc:
            log.error("Skipping account %s: %s", raw.get("account_id", "<unnamed>"), exc)

    if not loaded:
        log.error("No valid accounts configured; nothing to monitor.")
        return None
    return monitor


async def main() -> int:
    monitor = build_monitor(ACCOUNTS)
    if monitor is None:
        return 1
    loop = asyncio.get_running_loop()

    if platform.system() != "Windows":

        def _shutdown(sig: signal.Signals) -> None:
            log.info("Received %s, shutting down...", sig.name)
            monitor.stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _shutdown, sig)

        try:
            await monitor.run()
        except asyncio.CancelledError:
            pass

    else:
        try:
            await monitor.run()
        except (asyncio.CancelledError, KeyboardInterrupt):
            log.info("Shutting down...")
            monitor.stop()
            await asyncio.gather(*monitor.tasks, return_exceptions=True)

    log.info("Monitor stopped.")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
