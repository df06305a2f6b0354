"""Data models for postings, connections, and the legacy application format.

Records are stored as plain JSON-compatible dicts with camelCase keys. The
dataclasses here are the in-memory view. A stored connection keeps keys the
model does not know about in ``extra`` so they survive a rewrite.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class PostingStatus(Enum):
    SAVED = "saved"
    IN_PROGRESS = "in_progress"
    APPLIED = "applied"
    INTERVIEWING = "interviewing"
    OFFER = "offer"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class RelationshipType(Enum):
    RECRUITER = "recruiter"
    EMPLOYEE = "employee"
    REFERRAL = "referral"
    ALUMNI = "alumni"
    OTHER = "other"


class ContactEventType(Enum):
    EMAIL = "email"
    CALL = "call"
    MEETING = "meeting"
    LINKEDIN = "linkedin"
    OTHER = "other"


class DataVersion(Enum):
    NONE = "none"
    V1 = "v1"
    V2 = "v2"


class MigrationState(Enum):
    UP_TO_DATE = "up_to_date"
    NEEDS_POSTING_MIGRATION = "needs_posting_migration"
    NEEDS_CONNECTION_BACKFILL = "needs_connection_backfill"
    DONE = "done"


@dataclass(frozen=True)
class LegacyRecord:
    """A generation-1 job application, read once from an old storage key.

    ``status`` and ``interest`` keep whatever the old release wrote; they are
    only interpreted by the transformer.
    """

    id: str
    url: str
    company: str = ""
    title: str = ""
    location: str = ""
    description: str = ""
    salary: str | None = None
    status: Any = "saved"
    interest: Any = None
    tags: tuple[str, ...] = ()
    notes: str = ""
    date_added: Any = None
    date_applied: Any = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> LegacyRecord:
        return cls(
            id=raw.get("id", ""),
            url=raw.get("url", ""),
            company=raw.get("company", ""),
            title=raw.get("title", ""),
            location=raw.get("location", ""),
            description=raw.get("description", ""),
            salary=raw.get("salary"),
            status=raw.get("status", "saved"),
            interest=raw.get("interest"),
            tags=tuple(raw.get("tags") or ()),
            notes=raw.get("notes") or "",
            date_added=raw.get("dateAdded"),
            date_applied=raw.get("dateApplied"),
        )


@dataclass
class Posting:
    """A current-generation posting (schema 2 and 3 share this shape)."""

    id: str
    url: str
    company: str
    title: str
    status: PostingStatus
    interest: int
    date_added: int
    date_modified: int
    location: str = ""
    description: str = ""
    salary: str | None = None
    company_logo: str | None = None
    tags: list[str] = field(default_factory=list)
    notes: str = ""
    date_applied: int | None = None
    next_action_date: Any = None
    connection_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Storage shape. Optional fields that are unset are omitted."""
        data: dict[str, Any] = {
            "id": self.id,
            "url": self.url,
            "company": self.company,
            "title": self.title,
            "location": self.location,
            "description": self.description,
            "status": self.status.value,
            "interest": self.interest,
            "tags": list(self.tags),
            "notes": self.notes,
            "dateAdded": self.date_added,
            "dateModified": self.date_modified,
            "connectionIds": list(self.connection_ids),
        }
        optional = {
            "salary": self.salary,
            "companyLogo": self.company_logo,
            "dateApplied": self.date_applied,
            "nextActionDate": self.next_action_date,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        return data


@dataclass
class ContactEvent:
    id: str
    date: str
    type: ContactEventType = ContactEventType.OTHER
    notes: str | None = None


@dataclass
class Connection:
    """A person in the user's network, at schema generation 3.

    ``contact_history`` entries stay as stored dicts; use ``contact_events()``
    for typed access.
    """

    id: str
    name: str
    relationship_type: RelationshipType
    relationship_strength: int
    notes: str
    date_added: int
    date_modified: int
    email: str | None = None
    linkedin_url: str | None = None
    how_we_met: str | None = None
    contact_history: list[dict[str, Any]] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    def contact_events(self) -> list[ContactEvent]:
        return [
            ContactEvent(
                id=e.get("id", ""),
                date=e.get("date", ""),
                type=ContactEventType(e.get("type", "other")),
                notes=e.get("notes"),
            )
            for e in self.contact_history
        ]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extra)
        data.update({
            "id": self.id,
            "name": self.name,
            "relationshipType": self.relationship_type.value,
            "relationshipStrength": self.relationship_strength,
            "notes": self.notes,
            "contactHistory": list(self.contact_history),
            "dateAdded": self.date_added,
            "dateModified": self.date_modified,
        })
        optional = {
            "email": self.email,
            "linkedInUrl": self.linkedin_url,
            "howWeMet": self.how_we_met,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        return data


@dataclass
class MergeResult:
    merged: list[Any]
    inserted_count: int
    skipped_count: int


@dataclass
class MigrationReport:
    """Outcome of one orchestrator run, for logging and the CLI."""

    state: MigrationState
    from_version: int
    to_version: int
    legacy_key: str | None = None
    inserted_count: int = 0
    skipped_count: int = 0
    connections_backfilled: int = 0


@dataclass
class ImportResult:
    postings: int
    connections: int
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors
