from __future__ import annotations

import logging
import re

from db import WorkoutPlanRepository, SettingsRepository
from workout_generation_service import (
    GenerationError,
    GenerationResult,
    WorkoutGenerationService,
)

logger = logging.getLogger(__name__)


class PlanService:
    """Saves workout plans and keeps their generated workouts up to date.

    The plan row is always written first. Generation and cleanup run afterwards
    and their failures are reported, not raised, so a plan edit never fails
    because its workouts could not be rebuilt; the next edit retries.

    Saving, generating and cleaning up one plan all happen under that plan's
    lock, so the workouts left behind always match the last stored text.
    """

    def __init__(
        self,
        plan_repo: WorkoutPlanRepository,
        generator: WorkoutGenerationService,
        settings: SettingsRepository | None = None,
    ) -> None:
        self.plans = plan_repo
        self.generator = generator
        self.settings = settings

    def _enabled(self, key: str) -> bool:
        if self.settings is None:
            return True
        return self.settings.get_bool(key, True)

    def _sync_workouts(self, plan_id: int, plan_details: str, cleanup: bool) -> dict:
        outcome = {
            "created_count": 0,
            "updated_count": 0,
            "removed_count": 0,
            "generation_error": None,
        }
        if not self._enabled("auto_generate_workouts"):
            return outcome
        try:
            result = self.generator.generate(plan_id, plan_details)
        except GenerationError as e:
            logger.exception("Workout generation failed for plan %s", plan_id)
            outcome["created_count"] = e.created
            outcome["updated_count"] = e.updated
            outcome["generation_error"] = str(e)
            return outcome
        outcome.update(result.as_dict())
        if not (cleanup and self._enabled("auto_cleanup_workouts")):
            return outcome
        try:
            outcome["removed_count"] = self.generator.cleanup(plan_id, plan_details)
        except GenerationError as e:
            logger.exception("Workout cleanup failed for plan %s", plan_id)
            outcome["generation_error"] = str(e)
        return outcome

    def create_plan(
        self,
        user_id: int,
        name: str,
        plan_details: str = "",
        is_active: bool = False,
    ) -> dict:
        plan_id = self.plans.create(user_id, name, plan_details, is_active)
        outcome = {"id": plan_id}
        if plan_details:
            with self.generator.locks.hold(plan_id):
                outcome.update(self._sync_workouts(plan_id, plan_details, cleanup=False))
        return outcome

    def update_plan(self, plan_id: int, **fields) -> dict:
        with self.generator.locks.hold(plan_id):
            before = self.plans.fetch_detail(plan_id)
            self.plans.update(plan_id, **fields)
            outcome = {"id": plan_id}
            details = fields.get("plan_details")
            if details is not None and details != before["plan_details"]:
                outcome.update(self._sync_workouts(plan_id, details, cleanup=True))
            return outcome

    def activate_plan(self, plan_id: int) -> dict:
        self.plans.activate(plan_id)
        return self.plans.fetch_detail(plan_id)

    def update_exercise_weight(
        self, plan_id: int, exercise_name: str, new_weight: float
    ) -> dict:
        """Rewrite the kg weight on every exercise line named ``exercise_name``."""
        weight = f"{new_weight:g}"
        pattern = re.compile(
            rf"^(\s*\d+\.\s*{re.escape(exercise_name)}\s*-.*?@\s*)\d+(?:\.\d+)?(\s*kg)",
            re.IGNORECASE | re.MULTILINE,
        )
        with self.generator.locks.hold(plan_id):
            plan = self.plans.fetch_detail(plan_id)
            details = pattern.sub(
                lambda m: f"{m.group(1)}{weight}{m.group(2)}", plan["plan_details"]
            )
            return self.update_plan(plan_id, plan_details=details)

    def regenerate(self, plan_id: int) -> dict:
        """Rebuild the plan's workouts from its stored text.

        Unlike plan edits this raises :class:`GenerationError` to the caller.
        A cleanup failure still reports the days generated before it.
        """
        with self.generator.locks.hold(plan_id):
            plan = self.plans.fetch_detail(plan_id)
            result: GenerationResult = self.generator.generate(
                plan_id, plan["plan_details"]
            )
            try:
                removed = self.generator.cleanup(plan_id, plan["plan_details"])
            except GenerationError as e:
                e.created, e.updated = result.created, result.updated
                raise
        return {**result.as_dict(), "removed_count": removed}
