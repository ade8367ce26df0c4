"""
Periodic trigger.

A daemon thread runs a job once at start (configurable) and then every
``interval_seconds``. A failing run is logged and the next one still
happens. Runs never overlap inside one process: if a run is still busy
when the next tick fires, that tick is skipped.
"""
from __future__ import annotations

import logging
import threading
from datetime import date, datetime, time as dtime
from typing import Callable, Optional

from app.core.config import settings
from app.db.base import utcnow
from app.db.session import SessionFactory, SessionLocal, session_scope
from app.services.notifications import NotificationService
from app.services.recipients import RecipientResolver

logger = logging.getLogger(__name__)

PROJECT_STARTED = "PROJECT_STARTED"


class PeriodicTrigger:
    def __init__(
        self,
        job: Callable[[], object],
        interval_seconds: float = settings.scheduler_interval_seconds,
        run_on_start: bool = settings.scheduler_run_on_startup,
        name: str = "periodic-trigger",
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.job = job
        self.interval_seconds = interval_seconds
        self.run_on_start = run_on_start
        self.name = name
        self._stop = threading.Event()
        self._running = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        logger.info("%s started (every %ss)", self.name, self.interval_seconds)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def run_once(self) -> bool:
        """Run the job now. Returns False if a run was already in progress or the job failed."""
        if not self._running.acquire(blocking=False):
            logger.warning("%s: previous run still in progress, skipping", self.name)
            return False
        try:
            self.job()
            return True
        except Exception:
            logger.exception("%s: run failed", self.name)
            return False
        finally:
            self._running.release()

    def _loop(self) -> None:
        if self.run_on_start:
            self.run_once()
        while not self._stop.wait(self.interval_seconds):
            self.run_once()


def notify_projects_starting_today(
    notifications: NotificationService,
    session_factory: SessionFactory = SessionLocal,
    today: Optional[date] = None,
) -> int:
    """
    Announce every non-cancelled project whose start date is today to its
    members, and to its creator when the creator is not a member.

    Projects already announced today are skipped. Returns the number of
    projects announced by this run.
    """
    today = today or utcnow().date()
    midnight = datetime.combine(today, dtime.min)

    with session_scope(session_factory) as db:
        resolver = RecipientResolver(db)
        due = [
            (p.id, p.name or "Unnamed Project", p.created_by, resolver.project_member_ids(p.id))
            for p in resolver.projects_starting_on(today)
        ]

    announced = 0
    for project_id, name, creator_id, member_ids in due:
        if notifications.already_announced(PROJECT_STARTED, "Project", project_id, since=midnight):
            continue

        sent = False
        if member_ids:
            notifications.notify(
                member_ids,
                title="Project started",
                message=f'Project "{name}" has started today',
                type=PROJECT_STARTED,
                entity_type="Project",
                entity_id=project_id,
            )
            sent = True

        if creator_id and creator_id not in member_ids:
            notifications.notify(
                [creator_id],
                title="Project started",
                message=f'Your project "{name}" has started today',
                type=PROJECT_STARTED,
                entity_type="Project",
                entity_id=project_id,
            )
            sent = True

        if sent:
            announced += 1

    if announced:
        logger.info("Project start notifications sent for %d project(s)", announced)
    return announced
