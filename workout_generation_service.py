from __future__ import annotations

import logging
import sqlite3
import threading
import weakref
from contextlib import contextmanager
from dataclasses import dataclass
from typing import List

from db import PlanWorkoutRepository, PlanExerciseRepository
from plan_parser import ParsedDay, parse, parse_day_headers, scan_exercise_details

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    created: int = 0
    updated: int = 0

    def as_dict(self) -> dict:
        return {"created_count": self.created, "updated_count": self.updated}


class GenerationError(Exception):
    """Raised when persisting generated workouts fails part way through a plan.

    ``created`` and ``updated`` count the days committed before the failure.
    """

    def __init__(self, plan_id: int, message: str, created: int = 0, updated: int = 0) -> None:
        super().__init__(message)
        self.plan_id = plan_id
        self.created = created
        self.updated = updated

    def as_dict(self) -> dict:
        return {
            "plan_id": self.plan_id,
            "error": str(self),
            "created_count": self.created,
            "updated_count": self.updated,
        }


class PlanLockRegistry:
    """One re-entrant lock per plan id so work on a plan never interleaves.

    Locks are held weakly and disappear once no caller references them.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def lock_for(self, plan_id: int):
        with self._guard:
            lock = self._locks.get(plan_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[plan_id] = lock
            return lock

    @contextmanager
    def hold(self, plan_id: int):
        lock = self.lock_for(plan_id)
        with lock:
            yield


class WorkoutGenerationService:
    """Keeps the workouts of a plan in sync with its plan text.

    Workouts and their exercises are derived rows: every generation replaces
    the exercises of each day wholesale, so manual edits to them do not survive.
    """

    def __init__(
        self,
        workout_repo: PlanWorkoutRepository,
        exercise_repo: PlanExerciseRepository,
        locks: PlanLockRegistry | None = None,
    ) -> None:
        self.workouts = workout_repo
        self.exercises = exercise_repo
        self.locks = locks if locks is not None else PlanLockRegistry()

    @staticmethod
    def build_exercise_rows(day: ParsedDay) -> List[dict]:
        rows = []
        for index, ex in enumerate(day.exercises, start=1):
            details = scan_exercise_details(ex.line)
            rows.append(
                {
                    "order_index": index,
                    "title": ex.name,
                    "reps": ex.reps_sequence,
                    "weight": details.weight if details.weight is not None else ex.weight,
                    "is_bodyweight": ex.is_bodyweight,
                    "rest_seconds": (
                        details.rest_seconds
                        if details.rest_seconds is not None
                        else ex.rest_seconds
                    ),
                    "notes": details.notes if details.notes is not None else ex.notes,
                }
            )
        return rows

    def _sync_day(self, plan_id: int, day: ParsedDay) -> bool:
        """Create or replace one day's workout. Return True when it was created."""
        rows = self.build_exercise_rows(day)
        with self.workouts.transaction() as conn:
            existing = self.workouts.find(plan_id, day.day, conn=conn)
            if existing is None:
                workout_id = self.workouts.create(
                    plan_id, day.day, day.muscle_group, conn=conn
                )
                self.exercises.insert_many(workout_id, rows, conn=conn)
                logger.debug(
                    "plan %s day %s: created workout %s with %d exercises",
                    plan_id,
                    day.day,
                    workout_id,
                    len(rows),
                )
                return True
            workout_id = existing[0]
            self.exercises.delete_for_workout(workout_id, conn=conn)
            self.exercises.insert_many(workout_id, rows, conn=conn)
        logger.debug(
            "plan %s day %s: replaced exercises of workout %s (%d)",
            plan_id,
            day.day,
            workout_id,
            len(rows),
        )
        return False

    def generate(self, plan_id: int, plan_text: str) -> GenerationResult:
        """Create or replace the workout of every day found in ``plan_text``."""
        days = parse(plan_text)
        result = GenerationResult()
        with self.locks.hold(plan_id):
            logger.info("Generating workouts for plan %s (%d days)", plan_id, len(days))
            for day in days:
                try:
                    created = self._sync_day(plan_id, day)
                except sqlite3.Error as e:
                    raise GenerationError(
                        plan_id,
                        f"failed to store day {day.day}: {e}",
                        result.created,
                        result.updated,
                    ) from e
                if created:
                    result.created += 1
                else:
                    result.updated += 1
        logger.info(
            "Generated %d new workouts, updated %d existing workouts for plan %s",
            result.created,
            result.updated,
            plan_id,
        )
        return result

    def cleanup(self, plan_id: int, plan_text: str) -> int:
        """Delete the plan's workouts whose day header no longer exists."""
        valid_days = parse_day_headers(plan_text)
        with self.locks.hold(plan_id):
            try:
                removed = self.workouts.delete_not_in(plan_id, valid_days)
            except sqlite3.Error as e:
                raise GenerationError(plan_id, f"failed to remove workouts: {e}") from e
        if removed:
            logger.info("Removed %d workouts from plan %s", removed, plan_id)
        return removed
