"""
Seasonal scheduling: seasons, preservation schedules and scheduled events.

A schedule is the optimal window for applying a technique to a food item
within a season; an event is a concrete calendared occurrence of a schedule.
Schedules are registered unconditionally (neither technique_id nor
season_id is verified). Events require their schedule to exist, but not to
be owned by the caller.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from ..store import OpResult
from ..store.results import NOT_FOUND
from .base import BaseRegistry, CallContext
from .types import EVENT_STATUS_SCHEDULED, PreservationSchedule, ScheduledEvent, Season

logger = logging.getLogger(__name__)


class SeasonalRegistry(BaseRegistry):
    """Registry of seasonal timing guidance."""

    def register_season(
        self,
        ctx: CallContext,
        name: str,
        start_month: int,
        start_day: int,
        end_month: int,
        end_day: int,
        region: str,
        climate_notes: str,
    ) -> OpResult:
        season = Season(
            name=name,
            start_month=start_month,
            start_day=start_day,
            end_month=end_month,
            end_day=end_day,
            region=region,
            climate_notes=climate_notes,
            added_by=ctx.caller,
            added_at=ctx.height,
        )
        season_id = self._insert(season)
        logger.info("Registered season", extra={"season_id": season_id, "added_by": ctx.caller})
        return OpResult.success(season_id)

    def update_season(
        self,
        ctx: CallContext,
        season_id: int,
        start_month: int,
        start_day: int,
        end_month: int,
        end_day: int,
        climate_notes: str,
    ) -> OpResult:
        """Move a season's window and replace its climate notes.

        Name and region are fixed at registration.
        """
        with self.database.transaction():
            loaded = self._load_owned(Season, season_id, ctx.caller)
            if not loaded.ok:
                return loaded

            updated = replace(
                loaded.value,
                start_month=start_month,
                start_day=start_day,
                end_month=end_month,
                end_day=end_day,
                climate_notes=climate_notes,
            )
            self._replace(season_id, updated)

        return OpResult.success(season_id)

    def get_season(self, season_id: int) -> OpResult:
        return self._read(Season, season_id)

    def create_schedule(
        self,
        ctx: CallContext,
        technique_id: int,
        season_id: int,
        food_item: str,
        optimal_start_month: int,
        optimal_start_day: int,
        optimal_end_month: int,
        optimal_end_day: int,
        notes: str,
    ) -> OpResult:
        schedule = PreservationSchedule(
            technique_id=technique_id,
            season_id=season_id,
            food_item=food_item,
            optimal_start_month=optimal_start_month,
            optimal_start_day=optimal_start_day,
            optimal_end_month=optimal_end_month,
            optimal_end_day=optimal_end_day,
            notes=notes,
            created_by=ctx.caller,
            created_at=ctx.height,
        )
        schedule_id = self._insert(schedule)
        logger.info(
            "Created schedule",
            extra={"schedule_id": schedule_id, "technique_id": technique_id, "season_id": season_id},
        )
        return OpResult.success(schedule_id)

    def get_schedule(self, schedule_id: int) -> OpResult:
        return self._read(PreservationSchedule, schedule_id)

    def create_event(
        self,
        ctx: CallContext,
        schedule_id: int,
        event_name: str,
        event_date: int,
        location: str,
        participants: str,
    ) -> OpResult:
        """Create a scheduled event for an existing schedule.

        Returns:
            Success carrying the new event id, or NotFound for an unknown
            schedule (no identity is consumed in that case)
        """
        with self.database.transaction():
            if self._lookup(PreservationSchedule, schedule_id) is None:
                return NOT_FOUND

            event = ScheduledEvent(
                schedule_id=schedule_id,
                event_name=event_name,
                event_date=event_date,
                location=location,
                participants=participants,
                status=EVENT_STATUS_SCHEDULED,
                created_by=ctx.caller,
                created_at=ctx.height,
            )
            event_id = self._insert(event)

        logger.info("Created event", extra={"event_id": event_id, "schedule_id": schedule_id})
        return OpResult.success(event_id)

    def update_event_status(self, ctx: CallContext, event_id: int, status: str) -> OpResult:
        with self.database.transaction():
            loaded = self._load_owned(ScheduledEvent, event_id, ctx.caller)
            if not loaded.ok:
                return loaded

            event = loaded.value
            self._replace(event_id, replace(event, status=status))

        logger.info(
            "Event status changed",
            extra={"event_id": event_id, "from": event.status, "to": status},
        )
        return OpResult.success(event_id)

    def get_event(self, event_id: int) -> OpResult:
        return self._read(ScheduledEvent, event_id)
