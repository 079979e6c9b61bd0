"""
Record types for the preservation registry.

Each entity and relation is a dataclass that knows its storage kind and,
for owned records, which field names the identity allowed to mutate it.

Heights (registered_at, created_at, ...) come from the execution
environment and are recorded verbatim; dates supplied by callers
(scheduled_date, expiry_date, event_date) are opaque integers.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, ClassVar, TypeVar

CLASS_STATUS_OPEN = "open"
EVENT_STATUS_SCHEDULED = "scheduled"
ATTENDANCE_REGISTERED = "registered"

R = TypeVar("R", bound="StoredRecord")


class StoredRecord:
    """Mixin giving records their storage kind and dict conversion."""

    KIND: ClassVar[str]
    OWNER_FIELD: ClassVar[str | None] = None
    RELATION: ClassVar[bool] = False

    @property
    def owner_actor(self) -> str | None:
        if self.OWNER_FIELD is None:
            return None
        return getattr(self, self.OWNER_FIELD)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)  # type: ignore[call-overload]

    @classmethod
    def from_dict(cls: type[R], data: dict[str, Any]) -> R:
        names = {f.name for f in fields(cls)}  # type: ignore[arg-type]
        return cls(**{k: v for k, v in data.items() if k in names})


# --- Knowledge transfer ---


@dataclass(frozen=True)
class Teacher(StoredRecord):
    KIND: ClassVar[str] = "teacher"
    OWNER_FIELD: ClassVar[str | None] = "owner"

    owner: str
    name: str
    expertise: str
    experience_years: int
    region: str
    contact_info: str
    bio: str
    registered_at: int


@dataclass(frozen=True)
class PreservationClass(StoredRecord):
    """An instructional session. Mutations are gated by its teacher's owner."""

    KIND: ClassVar[str] = "class"

    teacher_id: int
    technique_id: int
    title: str
    description: str
    max_participants: int
    duration_hours: int
    prerequisites: str
    materials_needed: str
    location: str
    scheduled_date: int
    status: str
    created_at: int


@dataclass(frozen=True)
class ClassParticipant(StoredRecord):
    KIND: ClassVar[str] = "class_participant"
    RELATION: ClassVar[bool] = True

    registered_at: int
    attendance_status: str
    notes: str


@dataclass(frozen=True)
class Certification(StoredRecord):
    KIND: ClassVar[str] = "certification"

    recipient: str
    teacher_id: int
    technique_id: int
    certified_at: int
    expiry_date: int
    skill_level: str
    assessment_notes: str


@dataclass(frozen=True)
class EducationalResource(StoredRecord):
    KIND: ClassVar[str] = "educational_resource"
    OWNER_FIELD: ClassVar[str | None] = "author"

    title: str
    description: str
    resource_type: str
    technique_id: int
    content_hash: str
    author: str
    created_at: int


# --- Seasonal scheduling ---


@dataclass(frozen=True)
class Season(StoredRecord):
    KIND: ClassVar[str] = "season"
    OWNER_FIELD: ClassVar[str | None] = "added_by"

    name: str
    start_month: int
    start_day: int
    end_month: int
    end_day: int
    region: str
    climate_notes: str
    added_by: str
    added_at: int


@dataclass(frozen=True)
class PreservationSchedule(StoredRecord):
    KIND: ClassVar[str] = "schedule"
    OWNER_FIELD: ClassVar[str | None] = "created_by"

    technique_id: int
    season_id: int
    food_item: str
    optimal_start_month: int
    optimal_start_day: int
    optimal_end_month: int
    optimal_end_day: int
    notes: str
    created_by: str
    created_at: int


@dataclass(frozen=True)
class ScheduledEvent(StoredRecord):
    KIND: ClassVar[str] = "event"
    OWNER_FIELD: ClassVar[str | None] = "created_by"

    schedule_id: int
    event_name: str
    event_date: int
    location: str
    participants: str
    status: str
    created_by: str
    created_at: int


# --- Technique registration ---


@dataclass(frozen=True)
class Technique(StoredRecord):
    KIND: ClassVar[str] = "technique"
    OWNER_FIELD: ClassVar[str | None] = "owner"

    owner: str
    name: str
    description: str
    origin_region: str
    cultural_context: str
    estimated_age_years: int
    equipment_needed: str
    difficulty_level: str
    registered_at: int


@dataclass(frozen=True)
class TechniqueStep(StoredRecord):
    KIND: ClassVar[str] = "technique_step"
    RELATION: ClassVar[bool] = True

    description: str
    duration_minutes: int
    temperature: str
    special_notes: str


@dataclass(frozen=True)
class Ingredient(StoredRecord):
    KIND: ClassVar[str] = "ingredient"

    name: str
    category: str
    description: str


@dataclass(frozen=True)
class TechniqueIngredient(StoredRecord):
    KIND: ClassVar[str] = "technique_ingredient"
    RELATION: ClassVar[bool] = True

    quantity: str
    preparation: str
    substitutes: str
