from rest_api import PlanAPI

SAMPLE_PLAN = """Day 1 - Chest & Triceps:
1. Bench Press - 4x8 @ 80kg | 120s rest
2. Incline Dumbbell Press - 3x10 @ 30kg | 90s
3. Dips - 3x12 @ bodyweight | 90s rest (lean forward)

Day 2 - Back & Biceps:
1. Pull-ups - 4x6 @ bodyweight | 120s rest (full hang)
2. Barbell Row - 4x8 @ 70kg | 90s
3. Hammer Curl - 3x12 @ 14kg | 60s

Day 3 - Legs:
1. Back Squat - 5x5 @ 100kg | 180s rest
2. Romanian Deadlift - 3x8 @ 80kg | 120s
3. Walking Lunge - 3x12 @ bodyweight | 60s
"""


def seed(api: PlanAPI | None = None, user_id: int = 1) -> dict | None:
    api = api or PlanAPI()
    if api.plans.fetch_for_user(user_id):
        print("Database already contains plans")
        return None
    outcome = api.plan_service.create_plan(user_id, "Push Pull Legs", SAMPLE_PLAN, True)
    print(
        f"Seed plan {outcome['id']} inserted: "
        f"{outcome['created_count']} workouts created"
    )
    return outcome


if __name__ == "__main__":
    seed()
