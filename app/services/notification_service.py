from __future__ import annotations

from typing import Protocol

import structlog

from app.config import settings
from app.models import Job, User


logger = structlog.get_logger(__name__)


class PushDispatcher(Protocol):
    def send(self, *, token: str, title: str, body: str, data: dict) -> None: ...


class LogPushDispatcher:
    """Records pushes in the log instead of delivering them."""

    def send(self, *, token: str, title: str, body: str, data: dict) -> None:
        logger.info('push_notification_dispatched', title=title, data=data)


def get_push_dispatcher() -> PushDispatcher:
    if settings.push_dispatcher == 'log':
        return LogPushDispatcher()
    raise ValueError(f'Unsupported push dispatcher: {settings.push_dispatcher}')


def notify_job_assigned(dispatcher: PushDispatcher, *, technician: User, job: Job) -> bool:
    """Fire-and-forget push to a newly assigned technician.

    Returns whether a push was handed to the dispatcher. Delivery errors
    are logged and never propagate to the caller.
    """
    if not technician.push_token:
        return False
    try:
        dispatcher.send(
            token=technician.push_token,
            title='New job assigned',
            body=f'{job.job_number}: {job.summary}',
            data={'job_id': job.id, 'job_number': job.job_number},
        )
    except Exception:
        logger.warning('push_notification_failed', user_id=technician.id, job_id=job.id, exc_info=True)
        return False
    return True
