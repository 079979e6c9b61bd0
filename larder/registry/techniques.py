"""
Technique registration: techniques, their ordered steps, ingredients and
technique-ingredient links.

Steps and ingredient links are relation records hanging off a technique;
only the technique's owner may add them. Step numbers are chosen by the
caller, so adding the same step number twice overwrites the earlier step.
Ingredients are a shared catalogue anyone may extend.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from ..store import OpResult
from .base import BaseRegistry, CallContext
from .types import Ingredient, Technique, TechniqueIngredient, TechniqueStep

logger = logging.getLogger(__name__)


class TechniqueRegistry(BaseRegistry):
    """Registry of preservation techniques.

    Example:
        >>> techniques = TechniqueRegistry(db)
        >>> ctx = CallContext(caller="user:maria", height=100)
        >>> techniques.register_technique(ctx, "Lacto-Fermentation", ...).value
        1
    """

    def register_technique(
        self,
        ctx: CallContext,
        name: str,
        description: str,
        origin_region: str,
        cultural_context: str,
        estimated_age_years: int,
        equipment_needed: str,
        difficulty_level: str,
    ) -> OpResult:
        """Register a technique owned by the caller.

        Returns:
            Success carrying the new technique id
        """
        technique = Technique(
            owner=ctx.caller,
            name=name,
            description=description,
            origin_region=origin_region,
            cultural_context=cultural_context,
            estimated_age_years=estimated_age_years,
            equipment_needed=equipment_needed,
            difficulty_level=difficulty_level,
            registered_at=ctx.height,
        )
        technique_id = self._insert(technique)
        logger.info(
            "Registered technique",
            extra={"technique_id": technique_id, "owner": ctx.caller, "height": ctx.height},
        )
        return OpResult.success(technique_id)

    def update_technique(
        self,
        ctx: CallContext,
        technique_id: int,
        description: str,
        equipment_needed: str,
        difficulty_level: str,
    ) -> OpResult:
        """Replace a technique's description, equipment and difficulty.

        Name, origin and cultural context are fixed at registration.
        """
        with self.database.transaction():
            loaded = self._load_owned(Technique, technique_id, ctx.caller)
            if not loaded.ok:
                return loaded

            updated = replace(
                loaded.value,
                description=description,
                equipment_needed=equipment_needed,
                difficulty_level=difficulty_level,
            )
            self._replace(technique_id, updated)

        return OpResult.success(technique_id)

    def get_technique(self, technique_id: int) -> OpResult:
        return self._read(Technique, technique_id)

    def add_technique_step(
        self,
        ctx: CallContext,
        technique_id: int,
        step_number: int,
        description: str,
        duration_minutes: int,
        temperature: str,
        special_notes: str,
    ) -> OpResult:
        """Add (or overwrite) step `step_number` of a technique the caller owns.

        Returns:
            Success carrying {"technique_id", "step_number"}
        """
        with self.database.transaction():
            loaded = self._load_owned(Technique, technique_id, ctx.caller)
            if not loaded.ok:
                return loaded

            step = TechniqueStep(
                description=description,
                duration_minutes=duration_minutes,
                temperature=temperature,
                special_notes=special_notes,
            )
            self.relations.put(step.KIND, (technique_id, step_number), step.to_dict())

        return OpResult.success({"technique_id": technique_id, "step_number": step_number})

    def get_technique_step(self, technique_id: int, step_number: int) -> OpResult:
        return self._read_relation(TechniqueStep, (technique_id, step_number))

    def register_ingredient(
        self,
        ctx: CallContext,
        name: str,
        category: str,
        description: str,
    ) -> OpResult:
        """Add an ingredient to the shared catalogue.

        Ingredients carry no owner; the caller is only logged.
        """
        ingredient = Ingredient(name=name, category=category, description=description)
        ingredient_id = self._insert(ingredient)
        logger.info(
            "Registered ingredient",
            extra={"ingredient_id": ingredient_id, "caller": ctx.caller},
        )
        return OpResult.success(ingredient_id)

    def get_ingredient(self, ingredient_id: int) -> OpResult:
        return self._read(Ingredient, ingredient_id)

    def add_technique_ingredient(
        self,
        ctx: CallContext,
        technique_id: int,
        ingredient_id: int,
        quantity: str,
        preparation: str,
        substitutes: str,
    ) -> OpResult:
        """Link an ingredient to a technique the caller owns.

        The ingredient id itself is not checked against the catalogue.

        Returns:
            Success carrying {"technique_id", "ingredient_id"}
        """
        with self.database.transaction():
            loaded = self._load_owned(Technique, technique_id, ctx.caller)
            if not loaded.ok:
                return loaded

            link = TechniqueIngredient(
                quantity=quantity,
                preparation=preparation,
                substitutes=substitutes,
            )
            self.relations.put(link.KIND, (technique_id, ingredient_id), link.to_dict())

        return OpResult.success({"technique_id": technique_id, "ingredient_id": ingredient_id})

    def get_technique_ingredient(self, technique_id: int, ingredient_id: int) -> OpResult:
        return self._read_relation(TechniqueIngredient, (technique_id, ingredient_id))
