"""Where extracted transactions and user notifications go.

Storage and WebSocket delivery live outside this service; the defaults here
only log, and deployments inject real implementations into create_app().
"""
import logging
from datetime import datetime, timezone
from typing import Protocol

LOGGER = logging.getLogger("finance_tracker.sinks")


class TransactionSink(Protocol):
    def create_transaction(self, record: dict) -> dict: ...


class UserNotifier(Protocol):
    def notify_user(self, user_id, message: dict) -> None: ...


class LoggingTransactionSink:
    def create_transaction(self, record):
        LOGGER.info("Transaction for user %s: %s %.2f", record.get("user_id"), record.get("merchant"), record.get("amount"))
        return record


class LoggingNotifier:
    def notify_user(self, user_id, message):
        LOGGER.info("Notify user %s: [%s] %s", user_id, message.get("type"), message.get("message"))


def save_transactions(sink, transactions):
    """Persist each record; one failed save does not stop the rest."""
    saved = []
    for transaction in transactions:
        try:
            saved.append(sink.create_transaction(transaction.model_dump(mode="json")))
        except Exception:
            LOGGER.exception("Failed to save transaction for %r", transaction.merchant)
    return saved


def processing_message(kind, message, **data):
    data.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    return {"type": kind, "message": message, "data": data}
