"""Downstream collaborators: audit sink, message dispatcher, assignment notifier.

The engine only decides what should happen. These interfaces hand the
decisions to whatever stores audit logs, delivers messages or pings staff.
The defaults log or buffer in memory.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .storage.models import ActivityEntry, Lead, utcnow

logger = logging.getLogger(__name__)


@dataclass
class ScheduledMessage:
    """A nurture message ready for delivery at ``send_at``."""

    lead_id: int
    sequence_id: str
    step_number: int
    channel: str  # "email" or "sms"
    body: str
    send_at: datetime
    subject: Optional[str] = None
    recipient: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    created_at: datetime = field(default_factory=utcnow)


class AuditSink(ABC):
    """Receives append-only activity entries after they are committed."""

    @abstractmethod
    def record(self, entry: ActivityEntry):
        """Store or forward an activity entry."""
        pass


class MessageDispatcher(ABC):
    """Delivers (or queues) scheduled nurture messages."""

    @abstractmethod
    def dispatch(self, message: ScheduledMessage):
        """Hand a message off for delivery."""
        pass


class AssignmentNotifier(ABC):
    """Tells staff they own a lead."""

    @abstractmethod
    def notify(self, lead: Lead, assignment):
        """Announce an assignment result."""
        pass


class LoggingAuditSink(AuditSink):
    """Write audit entries to the application log."""

    def record(self, entry: ActivityEntry):
        logger.info(
            f"[audit] lead={entry.lead_id} type={entry.activity_type.value} actor={entry.actor} "
            f"{entry.description}"
        )


class MemoryAuditSink(AuditSink):
    """Keep audit entries in memory."""

    def __init__(self):
        self.entries: List[ActivityEntry] = []

    def record(self, entry: ActivityEntry):
        self.entries.append(entry)


class OutboxDispatcher(MessageDispatcher):
    """Collect messages in an outbox for a delivery worker to drain."""

    def __init__(self):
        self.outbox: List[ScheduledMessage] = []

    def dispatch(self, message: ScheduledMessage):
        self.outbox.append(message)
        logger.info(
            f"Queued {message.channel} step {message.step_number} of {message.sequence_id} "
            f"for lead #{message.lead_id} at {message.send_at.isoformat()}"
        )

    def drain(self) -> List[ScheduledMessage]:
        messages, self.outbox = self.outbox, []
        return messages


class LoggingAssignmentNotifier(AssignmentNotifier):
    """Log assignments instead of sending notifications."""

    def notify(self, lead: Lead, assignment):
        logger.info(f"Lead #{lead.id} ({lead.display_name}) assigned to {assignment.staff_name}: {assignment.reason}")


class MemoryAssignmentNotifier(AssignmentNotifier):
    """Keep assignment notifications in memory."""

    def __init__(self):
        self.notifications = []

    def notify(self, lead: Lead, assignment):
        self.notifications.append((lead.id, assignment))
