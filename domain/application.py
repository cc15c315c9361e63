"""
Domain: Application entity.

An Application is a consumer vehicle-loan lead. It is a shared resource: no
single dealer owns it. Applicant fields are opaque to the marketplace core;
only identity, submission time, status and the permanent-lock marker take
part in locking and pricing decisions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping
from uuid import UUID

from .time import require_utc_timestamp, whole_days_between


class ApplicationStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_listed(self) -> bool:
        """Only submitted and approved applications are offered to dealers."""
        return self in (ApplicationStatus.SUBMITTED, ApplicationStatus.APPROVED)


@dataclass(frozen=True, slots=True)
class Application:
    """
    Pure domain entity for a submitted (or draft) application.

    permanently_locked is an idempotent marker set once any dealer takes a
    permanent lock; it is never cleared.
    """

    application_id: UUID
    submitted_at: datetime
    status: ApplicationStatus
    applicant: Mapping[str, Any] = field(default_factory=dict)
    permanently_locked: bool = False

    def __post_init__(self) -> None:
        require_utc_timestamp("submitted_at", self.submitted_at)

    def age_days(self, as_of: datetime) -> int:
        """Whole days elapsed since submission."""
        return whole_days_between(self.submitted_at, as_of)
