import asyncio
import threading
from datetime import datetime, timezone

from classwork.core.config import settings
from classwork.repositories.submission_repository import SubmissionRepository
from classwork.services.notification_service import (
    BackgroundNotificationDispatcher, Notifier, SmtpNotifier, deliver_notification, record_notice
)
from tests.conftest import make_file


class StubNotifier(Notifier):
    def __init__(self, outcome=True, delay=0.0, error=None):
        self.outcome = outcome
        self.delay = delay
        self.error = error
        self.events = []

    async def notify(self, event):
        self.events.append(event)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.outcome


def submitted_event(service, make_task, users, dispatcher, **task_kwargs):
    task = make_task(**task_kwargs)
    result = service.submit(task.id, users.student.id, [make_file("essay.pdf", size=2048)], "see attached")
    return result, dispatcher.events[-1]


def notified(session_factory, submission_id):
    db = session_factory()
    try:
        return SubmissionRepository(db).get_by_id(submission_id).notified_owner
    finally:
        db.close()


def test_successful_delivery_sets_flag(service, make_task, users, dispatcher, session_factory):
    result, event = submitted_event(service, make_task, users, dispatcher)
    notifier = StubNotifier()

    assert asyncio.run(deliver_notification(event, notifier, session_factory, timeout=1)) is True
    assert notified(session_factory, result.submission.id) is True


def test_failed_delivery_is_swallowed(service, make_task, users, dispatcher, session_factory):
    result, event = submitted_event(service, make_task, users, dispatcher)
    notifier = StubNotifier(error=ConnectionRefusedError("smtp down"))

    assert asyncio.run(deliver_notification(event, notifier, session_factory, timeout=1)) is False
    assert notified(session_factory, result.submission.id) is False


def test_slow_delivery_times_out(service, make_task, users, dispatcher, session_factory):
    result, event = submitted_event(service, make_task, users, dispatcher)
    notifier = StubNotifier(delay=5)

    assert asyncio.run(deliver_notification(event, notifier, session_factory, timeout=0.05)) is False
    assert notified(session_factory, result.submission.id) is False


def test_stale_event_does_not_flag_newer_submission(service, make_task, users, dispatcher,
                                                    session_factory, clock):
    result, stale = submitted_event(service, make_task, users, dispatcher)
    clock.set(2024, 1, 9, 18, 0)
    service.submit(stale.task_id, users.student.id, [make_file("v2.pdf")])

    assert asyncio.run(deliver_notification(stale, StubNotifier(), session_factory, timeout=1)) is True
    assert notified(session_factory, result.submission.id) is False


def test_resubmission_resets_flag(service, make_task, users, dispatcher, session_factory, clock):
    result, event = submitted_event(service, make_task, users, dispatcher)
    asyncio.run(deliver_notification(event, StubNotifier(), session_factory, timeout=1))

    clock.set(2024, 1, 9, 18, 0)
    again = service.submit(event.task_id, users.student.id, [make_file("v2.pdf")])

    assert again.submission.notified_owner is False
    assert dispatcher.events[-1].resubmission is True


def test_flag_is_written_off_the_event_loop_thread(service, make_task, users, dispatcher,
                                                   session_factory, monkeypatch):
    result, event = submitted_event(service, make_task, users, dispatcher)
    threads = []
    real_mark = SubmissionRepository.mark_owner_notified

    def tracking_mark(self, submission_id, submitted_at):
        threads.append(threading.get_ident())
        return real_mark(self, submission_id, submitted_at)
    monkeypatch.setattr(SubmissionRepository, "mark_owner_notified", tracking_mark)

    async def run():
        loop_thread = threading.get_ident()
        delivered = await deliver_notification(event, StubNotifier(), session_factory, timeout=1)
        return loop_thread, delivered

    loop_thread, delivered = asyncio.run(run())

    assert delivered is True
    assert len(threads) == 1 and threads[0] != loop_thread
    assert notified(session_factory, result.submission.id) is True


def test_flag_write_failure_is_swallowed(service, make_task, users, dispatcher, session_factory):
    _, event = submitted_event(service, make_task, users, dispatcher)

    def broken_factory():
        raise RuntimeError("database unavailable")

    assert asyncio.run(deliver_notification(event, StubNotifier(), broken_factory, timeout=1)) is False


def test_record_notice_reports_stale_event(service, make_task, users, dispatcher, session_factory, clock):
    result, stale = submitted_event(service, make_task, users, dispatcher)
    clock.set(2024, 1, 9, 18, 0)
    service.submit(stale.task_id, users.student.id, [make_file("v2.pdf")])

    assert record_notice(stale, session_factory) is False
    assert record_notice(dispatcher.events[-1], session_factory) is True
    assert notified(session_factory, result.submission.id) is True


def test_background_dispatcher_queues_delivery():
    class Tasks:
        def __init__(self):
            self.queued = []

        def add_task(self, func, *args):
            self.queued.append((func, args))

    tasks = Tasks()
    notifier = StubNotifier()
    factory = object()
    BackgroundNotificationDispatcher(tasks, notifier, factory, 3).dispatch("event")

    assert tasks.queued == [(deliver_notification, ("event", notifier, factory, 3))]
    assert notifier.events == []


# ===================================================================
# EMAIL CONTENT
# ===================================================================

def test_unconfigured_smtp_skips(service, make_task, users, dispatcher):
    _, event = submitted_event(service, make_task, users, dispatcher)
    notifier = SmtpNotifier(settings.model_copy(update={"SMTP_USERNAME": "", "SMTP_PASSWORD": ""}))

    assert asyncio.run(notifier.notify(event)) is False


def test_late_email_content(service, make_task, users, dispatcher, clock):
    clock.set(2024, 1, 11)
    _, event = submitted_event(service, make_task, users, dispatcher,
                               title="Compiler <Design>",
                               due_date=datetime(2024, 1, 10, tzinfo=timezone.utc))
    notifier = SmtpNotifier(settings.model_copy(update={"FRONTEND_URL": "https://lms.example.com/"}))

    message = notifier.build_message(event)

    assert message["Subject"] == "[LATE] New Assignment Submission: Compiler <Design>"
    assert message["To"] == "teacher@example.com"
    text = message.get_body(preferencelist=("plain",)).get_content()
    assert "Chitra N submitted 'Compiler <Design>' after the due date." in text
    assert "essay.pdf (0.00 MB)" in text
    assert "see attached" in text
    assert f"https://lms.example.com/assignments/{event.submission_id}" in text
    html_part = message.get_body(preferencelist=("html",)).get_content()
    assert "Compiler &lt;Design&gt;" in html_part
