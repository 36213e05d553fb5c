"""
Remiaq — Worker process.

Wires settings, SQLite stores, the FCM notifier and the schedule calculator
into a ReminderWorker and runs its polling loop until SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import logging
import signal

from src.config import settings
from src.core.lunar_calendar import LunarCalendar
from src.core.schedule_calculator import ScheduleCalculator
from src.core.worker import ReminderWorker

logger = logging.getLogger(__name__)


def build_worker() -> ReminderWorker:
    """Assemble a worker from the configured adapters."""
    from src.adapters.fcm_notifier import FCMNotifier, initialize_firebase_app
    from src.data.db import ReminderDB, SystemStatusDB, UserDB

    app = initialize_firebase_app(settings.FCM_CREDENTIALS_PATH)
    calculator = ScheduleCalculator(LunarCalendar(settings.LUNAR_TIMEZONE_OFFSET))

    return ReminderWorker(
        reminder_store=ReminderDB(),
        user_store=UserDB(),
        status_store=SystemStatusDB(),
        sender=FCMNotifier(app),
        calculator=calculator,
        interval_seconds=settings.WORKER_INTERVAL_SECONDS,
    )


async def run(worker: ReminderWorker) -> None:
    """Run the worker until the process receives SIGINT or SIGTERM."""
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    await worker.start(stop_event)


def main() -> None:
    """Entry point: build the worker and start polling."""
    logger.info("Starting Remiaq reminder worker (%s)...", settings.ENVIRONMENT)
    asyncio.run(run(build_worker()))


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    main()
