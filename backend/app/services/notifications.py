"""
Outbound notification hook.

Delivery (mail, push) belongs to the notification service; this core only
hands it lifecycle events after the triggering transaction has committed.
"""
import logging

logger = logging.getLogger(__name__)


class Notifier:
    async def emit(self, event: str, recipient_id: int, payload: dict) -> None:
        logger.info("Notification %s for user %s: %s", event, recipient_id, payload)


_notifier = Notifier()


def get_notifier() -> Notifier:
    return _notifier


async def notify(notifier: Notifier, event: str, recipient_id: int, payload: dict) -> None:
    """Fire and forget: a failed emit never undoes the committed change."""
    try:
        await notifier.emit(event, recipient_id, payload)
    except Exception:
        logger.exception("Failed to emit %s notification to user %s", event, recipient_id)
