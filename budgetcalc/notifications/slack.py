"""Slack notifications for budget change requests and decisions."""

from __future__ import annotations

import asyncio
import logging
import threading

import httpx

from budgetcalc.config import get_config
from budgetcalc.models import ChangeStatus, PendingBudgetChange

logger = logging.getLogger(__name__)

# Keep scheduled notification tasks and worker threads referenced until they finish
_background_tasks: set[asyncio.Task] = set()
_background_threads: set[threading.Thread] = set()


async def send_slack_notification(message: str, blocks: list[dict] | None = None) -> bool:
    """Send a notification to Slack via webhook.

    Args:
        message: The fallback text message.
        blocks: Optional list of Slack Block Kit blocks for rich formatting.

    Returns:
        bool: True if successful, False otherwise.
    """
    config = get_config()

    if not config.notifications.enabled:
        logger.debug("slack_notifications_disabled_by_config")
        return False

    if not config.notifications.slack_webhook_url:
        logger.warning("slack_webhook_url_missing: Notifications enabled but no webhook URL configured")
        return False

    payload: dict = {"text": message}
    if blocks:
        payload["blocks"] = blocks

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(config.notifications.slack_webhook_url, json=payload)
            if response.status_code != 200:
                logger.error(
                    "slack_notification_failed: status=%s response=%s",
                    response.status_code,
                    response.text,
                )
                return False

            logger.info("slack_notification_sent")
            return True
    except httpx.HTTPError as e:
        logger.error("slack_notification_error: %s", str(e))
        return False


def format_change_message(change: PendingBudgetChange) -> str:
    if change.status == ChangeStatus.PENDING:
        return (
            f"Budget change requested by {change.requested_by}: {change.item_name} "
            f"({change.delta:+.2f}). Reason: {change.change_reason}"
        )
    reviewer = change.reviewed_by or change.requested_by
    return f"Budget change for {change.item_name} {change.status.value} by {reviewer}."


async def notify_change(change: PendingBudgetChange) -> bool:
    """Notify collaborators that a change entered or left pending. Never raises."""
    try:
        return await send_slack_notification(format_change_message(change))
    except Exception:
        logger.exception("change_notification_failed: change=%s", change.id)
        return False


def dispatch_change_notification(change: PendingBudgetChange) -> None:
    """Fire-and-forget notify_change.

    Inside a running event loop the send is scheduled as a task; otherwise it
    runs on a daemon thread with its own loop. The caller never waits on Slack.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        thread = threading.Thread(
            target=_notify_in_thread, args=(change,), name="slack-notify", daemon=True
        )
        _background_threads.add(thread)
        thread.start()
        return

    task = loop.create_task(notify_change(change))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)


def _notify_in_thread(change: PendingBudgetChange) -> None:
    try:
        asyncio.run(notify_change(change))
    finally:
        _background_threads.discard(threading.current_thread())
