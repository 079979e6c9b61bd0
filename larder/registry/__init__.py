"""
Preservation registry operations.

This module provides the sub-registries that make up the registry:
- TechniqueRegistry: techniques, steps, ingredients, technique ingredients
- KnowledgeRegistry: teachers, classes, participants, certifications, resources
- SeasonalRegistry: seasons, schedules, scheduled events
- PreservationRegistry: all of the above plus dispatch by operation name

Every operation returns an OpResult; domain failures are never raised.
"""

from .base import BaseRegistry, CallContext
from .knowledge import KnowledgeRegistry
from .seasonal import SeasonalRegistry
from .service import OPERATIONS, Operation, PreservationRegistry, UnknownOperationError
from .techniques import TechniqueRegistry
from .types import (
    ATTENDANCE_REGISTERED,
    CLASS_STATUS_OPEN,
    EVENT_STATUS_SCHEDULED,
    Certification,
    ClassParticipant,
    EducationalResource,
    Ingredient,
    PreservationClass,
    PreservationSchedule,
    ScheduledEvent,
    Season,
    Teacher,
    Technique,
    TechniqueIngredient,
    TechniqueStep,
)

__all__ = [
    "BaseRegistry",
    "CallContext",
    "KnowledgeRegistry",
    "SeasonalRegistry",
    "TechniqueRegistry",
    "PreservationRegistry",
    "OPERATIONS",
    "Operation",
    "UnknownOperationError",
    "ATTENDANCE_REGISTERED",
    "CLASS_STATUS_OPEN",
    "EVENT_STATUS_SCHEDULED",
    "Certification",
    "ClassParticipant",
    "EducationalResource",
    "Ingredient",
    "PreservationClass",
    "PreservationSchedule",
    "ScheduledEvent",
    "Season",
    "Teacher",
    "Technique",
    "TechniqueIngredient",
    "TechniqueStep",
]
