import os
import sqlite3
import sys
import threading
import time
import unittest
from unittest import mock

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    PlanExerciseRepository,
    PlanWorkoutRepository,
    SettingsRepository,
    WorkoutPlanRepository,
)
from plan_service import PlanService
from workout_generation_service import GenerationError, WorkoutGenerationService

PLAN = """Day 1 - Chest:
1. Bench Press - 4x8 @ 80kg | 120s rest
2. Incline Bench Press - 3x10 @ 60kg
Day 2 - Back:
1. Pull-ups - 4x6 @ bodyweight | 120s rest (full hang)
"""


class PlanServiceTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db = "test_plan_service.db"
        self.yaml = "test_plan_service.yaml"
        for path in (self.db, self.yaml):
            if os.path.exists(path):
                os.remove(path)
        self.settings = SettingsRepository(self.db, self.yaml)
        self.plans = WorkoutPlanRepository(self.db)
        self.workouts = PlanWorkoutRepository(self.db)
        self.exercises = PlanExerciseRepository(self.db)
        self.generator = WorkoutGenerationService(self.workouts, self.exercises)
        self.service = PlanService(self.plans, self.generator, self.settings)

    def tearDown(self) -> None:
        for path in (self.db, self.yaml):
            if os.path.exists(path):
                os.remove(path)

    def _days(self, plan_id: int) -> list[int]:
        return [day for _w, _p, day, *_ in self.workouts.fetch_for_plan(plan_id)]

    def test_create_generates_workouts(self) -> None:
        outcome = self.service.create_plan(1, "Split", PLAN)
        self.assertEqual(
            outcome,
            {
                "id": outcome["id"],
                "created_count": 2,
                "updated_count": 0,
                "removed_count": 0,
                "generation_error": None,
            },
        )
        self.assertEqual(self._days(outcome["id"]), [1, 2])

    def test_create_without_text(self) -> None:
        outcome = self.service.create_plan(1, "Empty")
        self.assertEqual(outcome, {"id": outcome["id"]})
        self.assertEqual(self.plans.fetch_detail(outcome["id"])["plan_details"], "")

    def test_update_regenerates_and_cleans_up(self) -> None:
        plan_id = self.service.create_plan(1, "Split", PLAN)["id"]
        edited = "Day 1 - Chest:\n1. Fly - 3x12 @ 15kg\nDay 3 - Legs:\n1. Squat - 5x5 @ 100kg\n"
        outcome = self.service.update_plan(plan_id, plan_details=edited)
        self.assertEqual(outcome["created_count"], 1)
        self.assertEqual(outcome["updated_count"], 1)
        self.assertEqual(outcome["removed_count"], 1)
        self.assertEqual(self._days(plan_id), [1, 3])

    def test_update_without_text_change_skips_generation(self) -> None:
        plan_id = self.service.create_plan(1, "Split", PLAN)["id"]
        with mock.patch.object(self.generator, "generate") as gen:
            outcome = self.service.update_plan(plan_id, name="Renamed", plan_details=PLAN)
        gen.assert_not_called()
        self.assertEqual(outcome, {"id": plan_id})
        self.assertEqual(self.plans.fetch_detail(plan_id)["name"], "Renamed")

    def test_generation_failure_is_not_fatal(self) -> None:
        plan_id = self.service.create_plan(1, "Split", PLAN)["id"]
        error = GenerationError(plan_id, "database is locked", created=0, updated=1)
        with mock.patch.object(self.generator, "generate", side_effect=error):
            with self.assertLogs("plan_service", level="ERROR"):
                outcome = self.service.update_plan(plan_id, plan_details=PLAN + "\n# v2")
        self.assertEqual(outcome["generation_error"], "database is locked")
        self.assertEqual(outcome["updated_count"], 1)
        self.assertTrue(self.plans.fetch_detail(plan_id)["plan_details"].endswith("# v2"))

    def test_auto_generate_disabled(self) -> None:
        self.settings.set_bool("auto_generate_workouts", False)
        outcome = self.service.create_plan(1, "Split", PLAN)
        self.assertEqual(outcome["created_count"], 0)
        self.assertEqual(self._days(outcome["id"]), [])

    def test_auto_cleanup_disabled(self) -> None:
        self.settings.set_bool("auto_cleanup_workouts", False)
        plan_id = self.service.create_plan(1, "Split", PLAN)["id"]
        outcome = self.service.update_plan(plan_id, plan_details="Day 1 - Chest:\n")
        self.assertEqual(outcome["removed_count"], 0)
        self.assertEqual(self._days(plan_id), [1, 2])

    def test_update_exercise_weight(self) -> None:
        plan_id = self.service.create_plan(1, "Split", PLAN)["id"]
        self.service.update_exercise_weight(plan_id, "bench press", 82.5)
        details = self.plans.fetch_detail(plan_id)["plan_details"]
        self.assertIn("1. Bench Press - 4x8 @ 82.5kg | 120s rest", details)
        self.assertIn("2. Incline Bench Press - 3x10 @ 60kg", details)
        self.assertIn("Pull-ups - 4x6 @ bodyweight", details)
        wid = self.workouts.find(plan_id, 1)[0]
        weights = [r["weight"] for r in self.exercises.fetch_for_workout(wid)]
        self.assertEqual(weights, [82.5, 60.0])

    def test_update_exercise_weight_matches_whole_name(self) -> None:
        plan_id = self.service.create_plan(1, "Split", PLAN)["id"]
        self.service.update_exercise_weight(plan_id, "Press", 50)
        details = self.plans.fetch_detail(plan_id)["plan_details"]
        self.assertEqual(details, PLAN)

    def test_cleanup_failure_keeps_generation_counts(self) -> None:
        plan_id = self.service.create_plan(1, "Split", PLAN)["id"]
        edited = PLAN + "Day 9 - Arms:\n1. Curl - 3x12 @ 12kg\n"
        failure = sqlite3.OperationalError("locked")
        with mock.patch.object(self.workouts, "delete_not_in", side_effect=failure):
            with self.assertLogs("plan_service", level="ERROR"):
                outcome = self.service.update_plan(plan_id, plan_details=edited)
        self.assertEqual(
            outcome,
            {
                "id": plan_id,
                "created_count": 1,
                "updated_count": 2,
                "removed_count": 0,
                "generation_error": "failed to remove workouts: locked",
            },
        )
        self.assertEqual(self._days(plan_id), [1, 2, 9])

    def test_regenerate_cleanup_failure_carries_counts(self) -> None:
        plan_id = self.service.create_plan(1, "Split", PLAN)["id"]
        failure = sqlite3.OperationalError("locked")
        with mock.patch.object(self.workouts, "delete_not_in", side_effect=failure):
            with self.assertRaises(GenerationError) as ctx:
                self.service.regenerate(plan_id)
        self.assertEqual(
            ctx.exception.as_dict(),
            {
                "plan_id": plan_id,
                "error": "failed to remove workouts: locked",
                "created_count": 0,
                "updated_count": 2,
            },
        )

    def test_overlapping_updates_keep_latest_text(self) -> None:
        plan_id = self.service.create_plan(1, "Split", PLAN)["id"]
        text_a = "Day 1 - A\n1. X - 3x5 @ 10kg\n"
        text_b = text_a + "Day 3 - C\n1. Z - 3x5 @ 10kg\n"
        cleanup = self.generator.cleanup
        started = threading.Event()
        second: list = []
        outcomes: list = []

        def run_second() -> None:
            started.set()
            outcomes.append(self.service.update_plan(plan_id, plan_details=text_b))

        def cleanup_after_second_starts(pid: int, text: str) -> int:
            # the first cleanup lets a second edit start before it runs
            if not second:
                second.append(threading.Thread(target=run_second))
                second[0].start()
                started.wait()
                time.sleep(0.05)
            return cleanup(pid, text)

        with mock.patch.object(
            self.generator, "cleanup", side_effect=cleanup_after_second_starts
        ):
            first = self.service.update_plan(plan_id, plan_details=text_a)
            second[0].join()

        self.assertEqual(first["removed_count"], 1)
        self.assertEqual(outcomes[0]["created_count"], 1)
        self.assertEqual(outcomes[0]["removed_count"], 0)
        self.assertEqual(self.plans.fetch_detail(plan_id)["plan_details"], text_b)
        self.assertEqual(self._days(plan_id), [1, 3])

    def test_activate_plan(self) -> None:
        first = self.service.create_plan(1, "A", "", is_active=True)["id"]
        second = self.service.create_plan(1, "B")["id"]
        plan = self.service.activate_plan(second)
        self.assertTrue(plan["is_active"])
        self.assertFalse(self.plans.fetch_detail(first)["is_active"])
        self.assertEqual(self.plans.fetch_active(1)["id"], second)

    def test_regenerate_raises(self) -> None:
        plan_id = self.service.create_plan(1, "Split", PLAN)["id"]
        self.assertEqual(
            self.service.regenerate(plan_id),
            {"created_count": 0, "updated_count": 2, "removed_count": 0},
        )
        error = GenerationError(plan_id, "boom")
        with mock.patch.object(self.generator, "generate", side_effect=error):
            with self.assertRaises(GenerationError):
                self.service.regenerate(plan_id)

    def test_missing_plan(self) -> None:
        with self.assertRaises(ValueError):
            self.service.update_plan(999, name="x")


if __name__ == "__main__":
    unittest.main()
