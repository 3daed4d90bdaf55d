"""SQLite database for leads, activity history and the staff roster."""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional, List, Dict, Any, Generator, Iterable, Tuple

from .models import (
    ActivityEntry,
    ActivityType,
    Actor,
    Lead,
    LeadSource,
    LeadStatus,
    StaffMember,
    StaffRole,
)

logger = logging.getLogger(__name__)

LEAD_COLUMNS = [
    "first_name", "last_name", "email", "phone",
    "source", "source_detail", "campaign_id", "notes",
    "website_visits", "page_views", "time_on_site_seconds", "form_abandoned", "last_page_viewed",
    "emails_opened", "links_clicked", "replies_received", "sequence_links_clicked",
    "quality_score", "urgency_score", "conversion_probability",
    "score_factors_json", "intent_signals_json", "score_history_json",
    "recommendation", "priority_rank",
    "status", "next_action", "next_action_at",
    "active_sequence_id", "current_step_number",
    "assigned_staff_id", "opted_out",
    "converted_customer_id", "conversion_value",
    "created_at", "updated_at", "last_scored_at", "nurture_started_at", "converted_at",
]

SORTABLE_COLUMNS = ("quality_score", "conversion_probability", "urgency_score", "created_at", "priority_rank")

TERMINAL_SQL = "('converted', 'lost')"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat(timespec="microseconds") if value else None


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """Keep digits only."""
    if not phone:
        return None
    digits = "".join(c for c in phone if c.isdigit())
    return digits or None


class LeadDatabase:
    """SQLite database for storing and managing leads."""

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize database connection."""
        if db_path is None:
            db_path = Path.home() / ".practice-growth" / "growth.db"

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_db()

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """A write transaction that holds the database write lock from the start.

        Read-compute-write sequences run inside one of these so concurrent
        writers to the same lead are serialized.
        """
        conn = sqlite3.connect(self.db_path, timeout=30, isolation_level=None)
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except Exception:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    @contextmanager
    def _use(self, conn: Optional[sqlite3.Connection]) -> Generator[sqlite3.Connection, None, None]:
        if conn is not None:
            yield conn
        else:
            with self._get_connection() as own:
                yield own

    def _init_db(self):
        """Initialize database schema."""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS leads (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    first_name TEXT,
                    last_name TEXT,
                    email TEXT,
                    phone TEXT,

                    source TEXT NOT NULL,
                    source_detail TEXT,
                    campaign_id TEXT,
                    notes TEXT,

                    website_visits INTEGER DEFAULT 0,
                    page_views INTEGER DEFAULT 0,
                    time_on_site_seconds INTEGER DEFAULT 0,
                    form_abandoned INTEGER DEFAULT 0,
                    last_page_viewed TEXT,

                    emails_opened INTEGER DEFAULT 0,
                    links_clicked INTEGER DEFAULT 0,
                    replies_received INTEGER DEFAULT 0,
                    sequence_links_clicked INTEGER DEFAULT 0,

                    quality_score INTEGER DEFAULT 0,
                    urgency_score INTEGER DEFAULT 0,
                    conversion_probability REAL DEFAULT 0,
                    score_factors_json TEXT,
                    intent_signals_json TEXT,
                    score_history_json TEXT,
                    recommendation TEXT,
                    priority_rank INTEGER,

                    status TEXT DEFAULT 'new',
                    next_action TEXT,
                    next_action_at TIMESTAMP,

                    active_sequence_id TEXT,
                    current_step_number INTEGER,

                    assigned_staff_id TEXT,
                    opted_out INTEGER DEFAULT 0,

                    converted_customer_id TEXT,
                    conversion_value REAL,

                    created_at TIMESTAMP,
                    updated_at TIMESTAMP,
                    last_scored_at TIMESTAMP,
                    nurture_started_at TIMESTAMP,
                    converted_at TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS activities (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    lead_id INTEGER NOT NULL,
                    activity_type TEXT NOT NULL,
                    description TEXT,
                    performed_by TEXT NOT NULL,
                    is_automated INTEGER DEFAULT 1,
                    old_value TEXT,
                    new_value TEXT,
                    metadata_json TEXT,
                    created_at TIMESTAMP,

                    FOREIGN KEY (lead_id) REFERENCES leads(id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS staff (
                    id TEXT PRIMARY KEY,
                    name TEXT,
                    role TEXT NOT NULL,
                    is_active INTEGER DEFAULT 1,
                    email TEXT,
                    position INTEGER
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_leads_status ON leads(status)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_leads_quality ON leads(quality_score DESC)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_leads_email ON leads(email)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_leads_phone ON leads(phone)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_leads_next_action ON leads(next_action_at)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_leads_staff ON leads(assigned_staff_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_activities_lead ON activities(lead_id)")

    # === ROW MAPPING ===

    def _lead_params(self, lead: Lead) -> Dict[str, Any]:
        return {
            "first_name": lead.first_name,
            "last_name": lead.last_name,
            "email": lead.email.lower() if lead.email else None,
            "phone": normalize_phone(lead.phone),
            "source": lead.source.value,
            "source_detail": lead.source_detail,
            "campaign_id": lead.campaign_id,
            "notes": lead.notes,
            "website_visits": lead.website_visits,
            "page_views": lead.page_views,
            "time_on_site_seconds": lead.time_on_site_seconds,
            "form_abandoned": int(lead.form_abandoned),
            "last_page_viewed": lead.last_page_viewed,
            "emails_opened": lead.emails_opened,
            "links_clicked": lead.links_clicked,
            "replies_received": lead.replies_received,
            "sequence_links_clicked": lead.sequence_links_clicked,
            "quality_score": lead.quality_score,
            "urgency_score": lead.urgency_score,
            "conversion_probability": lead.conversion_probability,
            "score_factors_json": json.dumps(lead.score_factors) if lead.score_factors else None,
            "intent_signals_json": json.dumps(lead.intent_signals) if lead.intent_signals else None,
            "score_history_json": json.dumps(lead.score_history) if lead.score_history else None,
            "recommendation": lead.recommendation,
            "priority_rank": lead.priority_rank,
            "status": lead.status.value,
            "next_action": lead.next_action,
            "next_action_at": _iso(lead.next_action_at),
            "active_sequence_id": lead.active_sequence_id,
            "current_step_number": lead.current_step_number,
            "assigned_staff_id": lead.assigned_staff_id,
            "opted_out": int(lead.opted_out),
            "converted_customer_id": lead.converted_customer_id,
            "conversion_value": lead.conversion_value,
            "created_at": _iso(lead.created_at),
            "updated_at": _iso(lead.updated_at),
            "last_scored_at": _iso(lead.last_scored_at),
            "nurture_started_at": _iso(lead.nurture_started_at),
            "converted_at": _iso(lead.converted_at),
        }

    def _row_to_lead(self, row: sqlite3.Row) -> Lead:
        """Convert a database row to a Lead object."""
        return Lead(
            id=row["id"],
            first_name=row["first_name"] or "",
            last_name=row["last_name"] or "",
            email=row["email"],
            phone=row["phone"],
            source=LeadSource(row["source"]),
            source_detail=row["source_detail"],
            campaign_id=row["campaign_id"],
            notes=row["notes"],
            website_visits=row["website_visits"] or 0,
            page_views=row["page_views"] or 0,
            time_on_site_seconds=row["time_on_site_seconds"] or 0,
            form_abandoned=bool(row["form_abandoned"]),
            last_page_viewed=row["last_page_viewed"],
            emails_opened=row["emails_opened"] or 0,
            links_clicked=row["links_clicked"] or 0,
            replies_received=row["replies_received"] or 0,
            sequence_links_clicked=row["sequence_links_clicked"] or 0,
            quality_score=row["quality_score"] or 0,
            urgency_score=row["urgency_score"] or 0,
            conversion_probability=row["conversion_probability"] or 0.0,
            score_factors=json.loads(row["score_factors_json"]) if row["score_factors_json"] else {},
            intent_signals=json.loads(row["intent_signals_json"]) if row["intent_signals_json"] else [],
            score_history=json.loads(row["score_history_json"]) if row["score_history_json"] else [],
            recommendation=row["recommendation"],
            priority_rank=row["priority_rank"],
            status=LeadStatus(row["status"]) if row["status"] else LeadStatus.NEW,
            next_action=row["next_action"],
            next_action_at=_dt(row["next_action_at"]),
            active_sequence_id=row["active_sequence_id"],
            current_step_number=row["current_step_number"],
            assigned_staff_id=row["assigned_staff_id"],
            opted_out=bool(row["opted_out"]),
            converted_customer_id=row["converted_customer_id"],
            conversion_value=row["conversion_value"],
            created_at=_dt(row["created_at"]),
            updated_at=_dt(row["updated_at"]),
            last_scored_at=_dt(row["last_scored_at"]),
            nurture_started_at=_dt(row["nurture_started_at"]),
            converted_at=_dt(row["converted_at"]),
        )

    # === DEDUPLICATION ===

    def find_open_duplicate(
        self,
        email: Optional[str],
        phone: Optional[str],
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[Lead]:
        """Find a non-terminal lead with the same email or phone."""
        with self._use(conn) as c:
            if email:
                row = c.execute(
                    f"SELECT * FROM leads WHERE email = ? COLLATE NOCASE AND status NOT IN {TERMINAL_SQL} "
                    "ORDER BY id LIMIT 1",
                    (email.lower(),),
                ).fetchone()
                if row:
                    return self._row_to_lead(row)

            digits = normalize_phone(phone)
            if digits:
                row = c.execute(
                    f"SELECT * FROM leads WHERE phone LIKE ? AND status NOT IN {TERMINAL_SQL} ORDER BY id LIMIT 1",
                    (f"%{digits[-10:]}",),
                ).fetchone()
                if row:
                    return self._row_to_lead(row)

            return None

    # === CRUD OPERATIONS ===

    def insert_lead(self, lead: Lead, conn: Optional[sqlite3.Connection] = None) -> Lead:
        """Insert a new lead and return it with its id."""
        params = self._lead_params(lead)
        columns = ", ".join(LEAD_COLUMNS)
        placeholders = ", ".join(f":{c}" for c in LEAD_COLUMNS)
        with self._use(conn) as c:
            cursor = c.execute(f"INSERT INTO leads ({columns}) VALUES ({placeholders})", params)
            lead.id = cursor.lastrowid
        return lead

    def update_lead(self, lead: Lead, conn: Optional[sqlite3.Connection] = None):
        """Write every field of a lead back to the database."""
        if lead.id is None:
            raise ValueError("Cannot update a lead without an id")
        params = self._lead_params(lead)
        params["id"] = lead.id
        assignments = ", ".join(f"{c} = :{c}" for c in LEAD_COLUMNS)
        with self._use(conn) as c:
            c.execute(f"UPDATE leads SET {assignments} WHERE id = :id", params)

    def get_lead(self, lead_id: int, conn: Optional[sqlite3.Connection] = None) -> Optional[Lead]:
        """Get a lead by ID."""
        with self._use(conn) as c:
            row = c.execute("SELECT * FROM leads WHERE id = ?", (lead_id,)).fetchone()
            return self._row_to_lead(row) if row else None

    def list_leads(
        self,
        statuses: Optional[Iterable[LeadStatus]] = None,
        min_quality: Optional[int] = None,
        assigned_staff_id: Optional[str] = None,
        source: Optional[LeadSource] = None,
        sort_by: str = "priority_rank",
        descending: bool = False,
        limit: Optional[int] = 50,
        offset: int = 0,
        conn: Optional[sqlite3.Connection] = None,
    ) -> List[Lead]:
        """List leads with optional filtering."""
        if sort_by not in SORTABLE_COLUMNS:
            raise ValueError(f"Cannot sort by {sort_by}; choose one of {SORTABLE_COLUMNS}")

        query = "SELECT * FROM leads WHERE 1=1"
        params: List[Any] = []

        if statuses is not None:
            statuses = list(statuses)
            if not statuses:
                return []
            query += f" AND status IN ({', '.join('?' for _ in statuses)})"
            params.extend(s.value for s in statuses)
        if min_quality is not None:
            query += " AND quality_score >= ?"
            params.append(min_quality)
        if assigned_staff_id:
            query += " AND assigned_staff_id = ?"
            params.append(assigned_staff_id)
        if source:
            query += " AND source = ?"
            params.append(source.value)

        direction = "DESC" if descending else "ASC"
        query += f" ORDER BY {sort_by} IS NULL, {sort_by} {direction}, id ASC"
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])

        with self._use(conn) as c:
            return [self._row_to_lead(row) for row in c.execute(query, params).fetchall()]

    def leads_for_scoring(
        self,
        lead_ids: Optional[List[int]] = None,
        status: Optional[LeadStatus] = None,
        limit: int = 100,
    ) -> List[int]:
        """Ids of non-terminal leads to rescore, never-scored and oldest-scored first."""
        query = f"SELECT id FROM leads WHERE status NOT IN {TERMINAL_SQL}"
        params: List[Any] = []
        if lead_ids:
            query += f" AND id IN ({', '.join('?' for _ in lead_ids)})"
            params.extend(lead_ids)
        if status:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY last_scored_at IS NOT NULL, last_scored_at ASC, id ASC LIMIT ?"
        params.append(limit)

        with self._get_connection() as conn:
            return [row["id"] for row in conn.execute(query, params).fetchall()]

    def count_higher_ranked(
        self,
        quality: int,
        probability: float,
        exclude_id: Optional[int] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        """Active leads ordered strictly ahead of (quality, probability)."""
        with self._use(conn) as c:
            row = c.execute(
                f"""
                SELECT COUNT(*) AS n FROM leads
                WHERE status NOT IN {TERMINAL_SQL}
                  AND id != ?
                  AND (quality_score > ? OR (quality_score = ? AND conversion_probability > ?))
                """,
                (exclude_id if exclude_id is not None else -1, quality, quality, probability),
            ).fetchone()
            return row["n"]

    def due_nurture_leads(self, now: datetime, limit: int = 100) -> List[int]:
        """Ids of nurturing leads whose next step is due."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT id FROM leads
                WHERE status = 'nurturing' AND opted_out = 0
                  AND next_action_at IS NOT NULL AND next_action_at <= ?
                ORDER BY next_action_at ASC LIMIT ?
                """,
                (_iso(now), limit),
            ).fetchall()
            return [row["id"] for row in rows]

    def leads_created_between(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Lead]:
        query = "SELECT * FROM leads WHERE 1=1"
        params: List[Any] = []
        if start:
            query += " AND created_at >= ?"
            params.append(_iso(start))
        if end:
            query += " AND created_at <= ?"
            params.append(_iso(end))
        with self._get_connection() as conn:
            return [self._row_to_lead(row) for row in conn.execute(query, params).fetchall()]

    def nurtured_leads(
        self,
        sequence_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Lead]:
        """Leads that have been placed in a nurture sequence."""
        query = "SELECT * FROM leads WHERE active_sequence_id IS NOT NULL"
        params: List[Any] = []
        if sequence_id:
            query += " AND active_sequence_id = ?"
            params.append(sequence_id)
        if start:
            query += " AND nurture_started_at >= ?"
            params.append(_iso(start))
        if end:
            query += " AND nurture_started_at <= ?"
            params.append(_iso(end))
        with self._get_connection() as conn:
            return [self._row_to_lead(row) for row in conn.execute(query, params).fetchall()]

    # === ACTIVITY LOG ===

    def add_activity(self, entry: ActivityEntry, conn: Optional[sqlite3.Connection] = None) -> ActivityEntry:
        """Append an activity entry."""
        with self._use(conn) as c:
            cursor = c.execute(
                """
                INSERT INTO activities (
                    lead_id, activity_type, description, performed_by, is_automated,
                    old_value, new_value, metadata_json, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.lead_id,
                    entry.activity_type.value,
                    entry.description,
                    str(entry.actor),
                    int(entry.actor.is_automated),
                    entry.old_value,
                    entry.new_value,
                    json.dumps(entry.metadata, default=str) if entry.metadata else None,
                    _iso(entry.created_at),
                ),
            )
            entry.id = cursor.lastrowid
        return entry

    def get_activities(self, lead_id: int, limit: int = 50) -> List[ActivityEntry]:
        """Activity history for a lead, newest first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM activities WHERE lead_id = ? ORDER BY id DESC LIMIT ?",
                (lead_id, limit),
            ).fetchall()

        return [
            ActivityEntry(
                id=row["id"],
                lead_id=row["lead_id"],
                activity_type=ActivityType(row["activity_type"]),
                description=row["description"] or "",
                actor=Actor.parse(row["performed_by"]),
                old_value=row["old_value"],
                new_value=row["new_value"],
                metadata=json.loads(row["metadata_json"]) if row["metadata_json"] else {},
                created_at=_dt(row["created_at"]),
            )
            for row in rows
        ]

    # === STAFF ROSTER ===

    def upsert_staff(self, member: StaffMember, conn: Optional[sqlite3.Connection] = None):
        """Add or update a roster entry, keeping its original roster position."""
        with self._use(conn) as c:
            c.execute(
                """
                INSERT INTO staff (id, name, role, is_active, email, position)
                VALUES (?, ?, ?, ?, ?, (SELECT COALESCE(MAX(position), 0) + 1 FROM staff))
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    role = excluded.role,
                    is_active = excluded.is_active,
                    email = excluded.email
                """,
                (member.id, member.name, member.role.value, int(member.is_active), member.email),
            )

    def replace_roster(self, members: List[StaffMember]):
        """Apply a roster snapshot: upsert listed members and deactivate the rest."""
        with self._get_connection() as conn:
            for member in members:
                self.upsert_staff(member, conn)
            ids = [m.id for m in members]
            if ids:
                conn.execute(
                    f"UPDATE staff SET is_active = 0 WHERE id NOT IN ({', '.join('?' for _ in ids)})",
                    ids,
                )
            else:
                conn.execute("UPDATE staff SET is_active = 0")
        logger.info(f"Roster snapshot applied ({len(members)} members)")

    def _row_to_staff(self, row: sqlite3.Row) -> StaffMember:
        return StaffMember(
            id=row["id"],
            name=row["name"] or "",
            role=StaffRole(row["role"]),
            is_active=bool(row["is_active"]),
            email=row["email"],
        )

    def get_staff(self, staff_id: str, conn: Optional[sqlite3.Connection] = None) -> Optional[StaffMember]:
        with self._use(conn) as c:
            row = c.execute("SELECT * FROM staff WHERE id = ?", (staff_id,)).fetchone()
            return self._row_to_staff(row) if row else None

    def list_staff(self, active_only: bool = False, conn: Optional[sqlite3.Connection] = None) -> List[StaffMember]:
        """Roster in the order members were first added."""
        query = "SELECT * FROM staff"
        if active_only:
            query += " WHERE is_active = 1"
        query += " ORDER BY position ASC"
        with self._use(conn) as c:
            return [self._row_to_staff(row) for row in c.execute(query).fetchall()]

    def staff_lead_stats(self, conn: Optional[sqlite3.Connection] = None) -> Dict[str, Tuple[int, float]]:
        """Map staff id to (open lead count, historical conversion rate)."""
        with self._use(conn) as c:
            rows = c.execute(
                f"""
                SELECT assigned_staff_id AS staff_id,
                       SUM(CASE WHEN status NOT IN {TERMINAL_SQL} THEN 1 ELSE 0 END) AS open_leads,
                       SUM(CASE WHEN status = 'converted' THEN 1 ELSE 0 END) AS converted,
                       COUNT(*) AS total
                FROM leads
                WHERE assigned_staff_id IS NOT NULL
                GROUP BY assigned_staff_id
                """
            ).fetchall()

        return {
            row["staff_id"]: (row["open_leads"], row["converted"] / row["total"] if row["total"] else 0.0)
            for row in rows
        }

    # === STATISTICS ===

    def get_stats(self) -> Dict[str, Any]:
        """Get database statistics."""
        with self._get_connection() as conn:
            total = conn.execute("SELECT COUNT(*) AS n FROM leads").fetchone()["n"]

            by_status = {
                row["status"]: row["n"]
                for row in conn.execute("SELECT status, COUNT(*) AS n FROM leads GROUP BY status").fetchall()
            }
            by_source = {
                row["source"]: row["n"]
                for row in conn.execute("SELECT source, COUNT(*) AS n FROM leads GROUP BY source").fetchall()
            }
            avg_quality = conn.execute(
                f"SELECT AVG(quality_score) AS q FROM leads WHERE status NOT IN {TERMINAL_SQL}"
            ).fetchone()["q"]
            activities = conn.execute("SELECT COUNT(*) AS n FROM activities").fetchone()["n"]

        return {
            "total_leads": total,
            "by_status": by_status,
            "by_source": by_source,
            "avg_active_quality": round(avg_quality or 0, 1),
            "total_activities": activities,
        }
