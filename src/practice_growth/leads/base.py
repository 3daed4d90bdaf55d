"""Shared plumbing for services that mutate leads inside a transaction."""

import logging
import sqlite3
from typing import Callable, List, Optional

from ..collaborators import AuditSink, LoggingAuditSink
from ..core.config import ScoringConfig
from ..core.lifecycle import StatusChange
from ..exceptions import NotFoundError
from ..storage.database import LeadDatabase
from ..storage.models import ActivityEntry, ActivityType, Actor, Lead, utcnow

logger = logging.getLogger(__name__)


class LeadService:
    """Base for services that read, change and audit lead records.

    Activity entries are written in the same transaction as the lead change
    and handed to the audit sink only after the transaction commits.
    """

    def __init__(
        self,
        db: LeadDatabase,
        config: Optional[ScoringConfig] = None,
        audit_sink: Optional[AuditSink] = None,
        clock: Optional[Callable] = None,
    ):
        self.db = db
        self.config = config or ScoringConfig()
        self.audit_sink = audit_sink or LoggingAuditSink()
        self.clock = clock or utcnow

    def _require_lead(self, lead_id: int, conn: Optional[sqlite3.Connection] = None) -> Lead:
        lead = self.db.get_lead(lead_id, conn)
        if lead is None:
            raise NotFoundError(f"Lead #{lead_id} not found")
        return lead

    def _record(
        self,
        conn: sqlite3.Connection,
        pending: List[ActivityEntry],
        lead: Lead,
        activity_type: ActivityType,
        description: str,
        actor: Optional[Actor] = None,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
        **metadata,
    ) -> ActivityEntry:
        entry = ActivityEntry(
            lead_id=lead.id,
            activity_type=activity_type,
            description=description,
            actor=actor or Actor.system(),
            old_value=old_value,
            new_value=new_value,
            metadata=metadata,
            created_at=self.clock(),
        )
        self.db.add_activity(entry, conn)
        pending.append(entry)
        return entry

    def _record_status(
        self,
        conn: sqlite3.Connection,
        pending: List[ActivityEntry],
        lead: Lead,
        change: Optional[StatusChange],
        **metadata,
    ):
        """Log a status transition, if one happened."""
        if change is None:
            return
        activity_type = ActivityType.LEAD_REACTIVATED if change.is_reactivation else ActivityType.STATUS_CHANGED
        self._record(
            conn, pending, lead, activity_type,
            f"Status changed from {change.old_status.value} to {change.new_status.value}",
            actor=change.actor,
            old_value=change.old_status.value,
            new_value=change.new_status.value,
            trigger=change.trigger.value,
            **metadata,
        )

    def _publish(self, pending: List[ActivityEntry]):
        for entry in pending:
            self.audit_sink.record(entry)
