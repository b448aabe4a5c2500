from typing import Annotated, Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from revsplit.database import get_db
from revsplit.services.interfaces import (
    CurrencyConverter, LoggingNotificationPublisher, NotificationPublisher, PaymentProvider,
)


# External collaborators. The engine ships without a bank or FX client;
# deployments bind theirs through app.dependency_overrides.
_notification_publisher = LoggingNotificationPublisher()


def get_payment_provider() -> Optional[PaymentProvider]:
    return None


def get_currency_converter() -> Optional[CurrencyConverter]:
    return None


def get_notification_publisher() -> NotificationPublisher:
    return _notification_publisher


# Type aliases for cleaner dependency injection
DB = Annotated[AsyncSession, Depends(get_db)]
Provider = Annotated[Optional[PaymentProvider], Depends(get_payment_provider)]
Converter = Annotated[Optional[CurrencyConverter], Depends(get_currency_converter)]
Notifier = Annotated[NotificationPublisher, Depends(get_notification_publisher)]
