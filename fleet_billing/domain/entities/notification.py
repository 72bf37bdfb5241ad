"""Installment notification records."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import uuid4


class NotificationType(str, Enum):
    RECEIPT = "receipt"
    FAILURE = "failure"
    REMINDER = "reminder"


@dataclass
class InstallmentNotification:
    installment_id: str
    tenant_id: str
    notification_type: NotificationType
    id: str = field(default_factory=lambda: str(uuid4()))
    sent_at: datetime = field(default_factory=datetime.utcnow)
