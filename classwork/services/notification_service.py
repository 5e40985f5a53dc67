"""
classwork/services/notification_service.py
Best-effort "new submission" notice to the task owner

The submission path only dispatches an event after its write commits.
Delivery runs later as a background task with its own timeout and its
own database session; its outcome shows up in logs and in the
submission's notified_owner flag, never in the submit response.
"""

from __future__ import annotations

import asyncio
import html
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from email.message import EmailMessage
from typing import Callable, List, Optional, Tuple

import aiosmtplib
from fastapi import BackgroundTasks
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from classwork.core.config import Settings
from classwork.repositories.submission_repository import SubmissionRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmissionEvent:
    submission_id: str
    task_id: str
    task_title: str
    owner_id: str
    owner_email: Optional[str]
    student_id: str
    student_name: str
    student_email: Optional[str]
    submitted_at: datetime
    due_date: Optional[datetime]
    is_late: bool
    resubmission: bool
    submission_text: Optional[str] = None
    files: List[Tuple[str, int]] = field(default_factory=list)


# =============================================================================
# NOTIFIERS
# =============================================================================

class Notifier(ABC):
    @abstractmethod
    async def notify(self, event: SubmissionEvent) -> bool:
        """Deliver the notice. Returns True when it was actually sent."""


class SmtpNotifier(Notifier):
    """Email notifier over SMTP (aiosmtplib)."""

    def __init__(self, settings: Settings):
        self.host = settings.SMTP_HOST
        self.port = settings.SMTP_PORT
        self.username = settings.SMTP_USERNAME
        self.password = settings.SMTP_PASSWORD
        self.from_email = settings.FROM_EMAIL
        self.frontend_url = settings.FRONTEND_URL.rstrip("/")
        self.timeout = settings.NOTIFY_TIMEOUT_SECONDS

    @property
    def is_configured(self) -> bool:
        return bool(self.username and self.password)

    async def notify(self, event: SubmissionEvent) -> bool:
        if not self.is_configured:
            logger.warning("SMTP credentials not configured; skipping submission notice")
            return False
        if not event.owner_email:
            logger.info("Task owner has no email address; skipping submission notice")
            return False

        message = self.build_message(event)
        await aiosmtplib.send(
            message,
            hostname=self.host,
            port=self.port,
            username=self.username,
            password=self.password,
            start_tls=True,
            timeout=self.timeout,
        )
        return True

    def build_message(self, event: SubmissionEvent) -> EmailMessage:
        late = "[LATE] " if event.is_late else ""
        message = EmailMessage()
        message["From"] = self.from_email
        message["To"] = event.owner_email
        message["Subject"] = f"{late}New Assignment Submission: {event.task_title}"

        file_lines = [
            f"{name} ({size / 1024 / 1024:.2f} MB)" for name, size in event.files
        ]
        link = f"{self.frontend_url}/assignments/{event.submission_id}"

        text = [
            f"{event.student_name} submitted '{event.task_title}'"
            + (" after the due date." if event.is_late else "."),
            f"Submitted at: {event.submitted_at.isoformat()}",
            f"Files uploaded: {len(event.files)}",
            *(f"  - {line}" for line in file_lines),
        ]
        if event.submission_text:
            text += ["", "Submission notes:", event.submission_text]
        text += ["", f"View submission: {link}"]
        message.set_content("\n".join(text))

        files_html = "".join(f"<li>{html.escape(line)}</li>" for line in file_lines)
        notes_html = (
            f"<p><strong>Submission notes:</strong><br>"
            f"{html.escape(event.submission_text).replace(chr(10), '<br>')}</p>"
            if event.submission_text else ""
        )
        message.add_alternative(
            f"""\
<div style="font-family: Arial, sans-serif; max-width: 600px;">
  <h2>Assignment Submission{" (LATE)" if event.is_late else ""}</h2>
  <p><strong>Task:</strong> {html.escape(event.task_title)}</p>
  <p><strong>Student:</strong> {html.escape(event.student_name)}</p>
  <p><strong>Submitted at:</strong> {event.submitted_at.isoformat()}</p>
  <p><strong>Files uploaded:</strong> {len(event.files)}</p>
  <ul>{files_html}</ul>
  {notes_html}
  <p><a href="{html.escape(link)}">View Submission Details</a></p>
</div>""",
            subtype="html",
        )
        return message


# =============================================================================
# DELIVERY
# =============================================================================

def record_notice(event: SubmissionEvent, session_factory: Callable[[], Session]) -> bool:
    """
    Set the submission's notified_owner flag in a session of its own.
    Blocking; deliver_notification runs it in the threadpool.
    """
    db = session_factory()
    try:
        recorded = SubmissionRepository(db).mark_owner_notified(event.submission_id, event.submitted_at)
        if recorded:
            db.commit()
        else:
            db.rollback()
        return recorded
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


async def deliver_notification(
    event: SubmissionEvent,
    notifier: Notifier,
    session_factory: Callable[[], Session],
    timeout: float,
) -> bool:
    """
    Run one notification attempt. Never raises: every failure is logged
    and reported as False.
    """
    try:
        delivered = await asyncio.wait_for(notifier.notify(event), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Submission notice for %s timed out after %.1fs", event.submission_id, timeout)
        return False
    except Exception:
        logger.warning("Submission notice for %s failed", event.submission_id, exc_info=True)
        return False

    if not delivered:
        return False

    try:
        recorded = await run_in_threadpool(record_notice, event, session_factory)
    except Exception:
        logger.warning("Could not record notice for %s", event.submission_id, exc_info=True)
        return False

    if not recorded:
        logger.info("Submission %s was resubmitted before its notice was recorded", event.submission_id)
    logger.info("Task owner notified of submission %s", event.submission_id)
    return True


class NotificationDispatcher(ABC):
    @abstractmethod
    def dispatch(self, event: SubmissionEvent) -> None:
        """Schedule delivery without waiting for it."""


class BackgroundNotificationDispatcher(NotificationDispatcher):
    """Queues delivery on FastAPI's BackgroundTasks (runs after the response)."""

    def __init__(
        self,
        background_tasks: BackgroundTasks,
        notifier: Notifier,
        session_factory: Callable[[], Session],
        timeout: float,
    ):
        self.background_tasks = background_tasks
        self.notifier = notifier
        self.session_factory = session_factory
        self.timeout = timeout

    def dispatch(self, event: SubmissionEvent) -> None:
        self.background_tasks.add_task(
            deliver_notification, event, self.notifier, self.session_factory, self.timeout
        )
