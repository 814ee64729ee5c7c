import logging

from asgiref.sync import sync_to_async
from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)


def format_duration(total_seconds) -> str:
    total_seconds = int(total_seconds or 0)
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"


def finish_summary(state, runner, event) -> dict:
    elapsed = 0
    if state.started_at and state.ended_at:
        elapsed = (state.ended_at - state.started_at).total_seconds()
    return {
        "activityId": state.activity_id,
        "email": runner.email,
        "displayName": runner.display_name,
        "eventName": event.name if event else "your run",
        "distanceMeters": round(state.distance_m, 1),
        "elapsedSec": elapsed,
    }


@shared_task
def notify_activity_finished(summary):
    km = summary["distanceMeters"] / 1000.0
    body = (
        f"Congratulations {summary['displayName']}!\n\n"
        f"You covered {km:.2f} km in {format_duration(summary['elapsedSec'])}."
    )
    send_mail(
        f"You finished {summary['eventName']}!",
        body,
        settings.DEFAULT_FROM_EMAIL,
        [summary["email"]],
    )


async def enqueue_finish_notification(summary):
    try:
        await sync_to_async(notify_activity_finished.delay)(summary)
    except Exception:
        # broker down: the finish itself is already persisted
        logger.exception("Could not enqueue finish notification for %s", summary["activityId"])
