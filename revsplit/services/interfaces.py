"""
External collaborator interfaces.

The engine never moves money or sends messages itself. It talks to:
- a payment provider that initiates transfers and later confirms them
- a notification publisher for payout outcome events
- a currency converter backed by an external rate service
"""
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, List


logger = logging.getLogger(__name__)


class PaymentProvider(ABC):
    """Outbound transfer execution (banking collaborator)."""

    @abstractmethod
    async def initiate_transfer(
        self,
        amount: Decimal,
        currency: str,
        recipient_bank_details: Dict[str, str],
    ) -> str:
        """Request a transfer and return the provider reference.

        Success is only known once the provider confirms settlement.
        """


class CurrencyConverter(ABC):
    """Rate lookup service. Conversion rules live outside the engine."""

    @abstractmethod
    async def convert(self, amount: Decimal, from_currency: str, to_currency: str) -> Decimal:
        ...


class PayoutEventType(str, Enum):
    PAYOUT_SUCCEEDED = "payout.succeeded"
    PAYOUT_FAILED = "payout.failed"


@dataclass
class PayoutEvent:
    event_type: PayoutEventType
    recipient_id: uuid.UUID
    payout_id: uuid.UUID
    amount: Decimal
    currency: str
    reason: str = ""
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationPublisher(ABC):
    """Notification collaborator. Delivery channels are its concern."""

    @abstractmethod
    async def publish(self, event: PayoutEvent) -> None:
        ...


class LoggingNotificationPublisher(NotificationPublisher):
    """
    Placeholder publisher that logs events.

    Used when no notification collaborator is wired in. Keeps the last events
    in memory for inspection.
    """

    def __init__(self, history_size: int = 100):
        self.history_size = history_size
        self.events: List[PayoutEvent] = []

    async def publish(self, event: PayoutEvent) -> None:
        logger.info(
            f"[NOTIFY] {event.event_type.value} recipient={event.recipient_id} "
            f"payout={event.payout_id} amount={event.amount} {event.currency}"
        )
        self.events.append(event)
        if len(self.events) > self.history_size:
            self.events = self.events[-self.history_size:]
