"""
Knowledge transfer: teachers, classes, class participation, certifications
and educational resources.

A class belongs to a teacher record. Creating a class, changing its status
and issuing certifications all require the caller to own that teacher
record. Registering for a class is open to anyone while the class status is
exactly "open"; the status itself is a free-form string the teacher's owner
may set to anything.

Invariants:
    - Class and certification ids are allocated only after the teacher checks pass
    - A participant is keyed by (class_id, caller); registering twice overwrites
    - technique_id on classes, certifications and resources is not verified
"""

from __future__ import annotations

import logging
from dataclasses import replace

from ..store import OpResult
from ..store.results import INVALID_STATE, NOT_FOUND
from .base import BaseRegistry, CallContext
from .types import (
    ATTENDANCE_REGISTERED,
    CLASS_STATUS_OPEN,
    Certification,
    ClassParticipant,
    EducationalResource,
    PreservationClass,
    Teacher,
)

logger = logging.getLogger(__name__)


class KnowledgeRegistry(BaseRegistry):
    """Registry of teachers and what they teach."""

    # --- Teachers ---

    def register_teacher(
        self,
        ctx: CallContext,
        name: str,
        expertise: str,
        experience_years: int,
        region: str,
        contact_info: str,
        bio: str,
    ) -> OpResult:
        teacher = Teacher(
            owner=ctx.caller,
            name=name,
            expertise=expertise,
            experience_years=experience_years,
            region=region,
            contact_info=contact_info,
            bio=bio,
            registered_at=ctx.height,
        )
        teacher_id = self._insert(teacher)
        logger.info("Registered teacher", extra={"teacher_id": teacher_id, "owner": ctx.caller})
        return OpResult.success(teacher_id)

    def update_teacher(
        self,
        ctx: CallContext,
        teacher_id: int,
        expertise: str,
        experience_years: int,
        contact_info: str,
        bio: str,
    ) -> OpResult:
        """Replace a teacher's expertise, experience, contact info and bio.

        Name and region are fixed at registration.
        """
        with self.database.transaction():
            loaded = self._load_owned(Teacher, teacher_id, ctx.caller)
            if not loaded.ok:
                return loaded

            updated = replace(
                loaded.value,
                expertise=expertise,
                experience_years=experience_years,
                contact_info=contact_info,
                bio=bio,
            )
            self._replace(teacher_id, updated)

        return OpResult.success(teacher_id)

    def get_teacher(self, teacher_id: int) -> OpResult:
        return self._read(Teacher, teacher_id)

    # --- Classes ---

    def create_class(
        self,
        ctx: CallContext,
        teacher_id: int,
        technique_id: int,
        title: str,
        description: str,
        max_participants: int,
        duration_hours: int,
        prerequisites: str,
        materials_needed: str,
        location: str,
        scheduled_date: int,
    ) -> OpResult:
        """Create an open class taught by a teacher record the caller owns."""
        with self.database.transaction():
            loaded = self._load_owned(Teacher, teacher_id, ctx.caller)
            if not loaded.ok:
                return loaded

            session = PreservationClass(
                teacher_id=teacher_id,
                technique_id=technique_id,
                title=title,
                description=description,
                max_participants=max_participants,
                duration_hours=duration_hours,
                prerequisites=prerequisites,
                materials_needed=materials_needed,
                location=location,
                scheduled_date=scheduled_date,
                status=CLASS_STATUS_OPEN,
                created_at=ctx.height,
            )
            class_id = self._insert(session)

        logger.info("Created class", extra={"class_id": class_id, "teacher_id": teacher_id})
        return OpResult.success(class_id)

    def update_class_status(self, ctx: CallContext, class_id: int, status: str) -> OpResult:
        """Set a class's status to any string.

        The class must exist, its teacher record must exist, and the caller
        must own the teacher record.
        """
        with self.database.transaction():
            session = self._lookup(PreservationClass, class_id)
            if session is None:
                return NOT_FOUND

            loaded = self._load_owned(Teacher, session.teacher_id, ctx.caller)
            if not loaded.ok:
                return loaded

            self._replace(class_id, replace(session, status=status))

        logger.info(
            "Class status changed",
            extra={"class_id": class_id, "from": session.status, "to": status},
        )
        return OpResult.success(class_id)

    def register_for_class(self, ctx: CallContext, class_id: int, notes: str) -> OpResult:
        """Register the caller as a participant of an open class.

        Returns:
            Success carrying {"class_id", "participant"}, NotFound for an
            unknown class, or InvalidState when the class is not "open"
        """
        with self.database.transaction():
            session = self._lookup(PreservationClass, class_id)
            if session is None:
                return NOT_FOUND
            if session.status != CLASS_STATUS_OPEN:
                logger.info(
                    "Registration rejected, class not open",
                    extra={"class_id": class_id, "status": session.status, "caller": ctx.caller},
                )
                return INVALID_STATE

            participant = ClassParticipant(
                registered_at=ctx.height,
                attendance_status=ATTENDANCE_REGISTERED,
                notes=notes,
            )
            self.relations.put(participant.KIND, (class_id, ctx.caller), participant.to_dict())

        return OpResult.success({"class_id": class_id, "participant": ctx.caller})

    def get_class(self, class_id: int) -> OpResult:
        return self._read(PreservationClass, class_id)

    def get_class_participant(self, class_id: int, participant: str) -> OpResult:
        return self._read_relation(ClassParticipant, (class_id, participant))

    # --- Certifications ---

    def issue_certification(
        self,
        ctx: CallContext,
        recipient: str,
        teacher_id: int,
        technique_id: int,
        expiry_date: int,
        skill_level: str,
        assessment_notes: str,
    ) -> OpResult:
        """Issue a certification on behalf of a teacher record the caller owns."""
        with self.database.transaction():
            loaded = self._load_owned(Teacher, teacher_id, ctx.caller)
            if not loaded.ok:
                return loaded

            certification = Certification(
                recipient=recipient,
                teacher_id=teacher_id,
                technique_id=technique_id,
                certified_at=ctx.height,
                expiry_date=expiry_date,
                skill_level=skill_level,
                assessment_notes=assessment_notes,
            )
            certification_id = self._insert(certification)

        logger.info(
            "Issued certification",
            extra={
                "certification_id": certification_id,
                "teacher_id": teacher_id,
                "recipient": recipient,
            },
        )
        return OpResult.success(certification_id)

    def get_certification(self, certification_id: int) -> OpResult:
        return self._read(Certification, certification_id)

    # --- Educational resources ---

    def add_educational_resource(
        self,
        ctx: CallContext,
        title: str,
        description: str,
        resource_type: str,
        technique_id: int,
        content_hash: str,
    ) -> OpResult:
        resource = EducationalResource(
            title=title,
            description=description,
            resource_type=resource_type,
            technique_id=technique_id,
            content_hash=content_hash,
            author=ctx.caller,
            created_at=ctx.height,
        )
        resource_id = self._insert(resource)
        logger.info("Added educational resource", extra={"resource_id": resource_id})
        return OpResult.success(resource_id)

    def get_educational_resource(self, resource_id: int) -> OpResult:
        return self._read(EducationalResource, resource_id)
