import os
import time
from fastapi import (
    FastAPI,
    HTTPException,
    Response,
    Body,
    Request,
    Header,
    Depends,
)
from db import (
    WorkoutPlanRepository,
    PlanWorkoutRepository,
    PlanExerciseRepository,
    SettingsRepository,
)
from plan_parser import parse
from plan_service import PlanService
from workout_generation_service import (
    GenerationError,
    PlanLockRegistry,
    WorkoutGenerationService,
)


class RateLimiter:
    """Simple in-memory rate limiter."""

    def __init__(self, limit: int = 60, window: int = 60) -> None:
        self.limit = limit
        self.window = window
        self.requests: dict[str, list[float]] = {}

    async def __call__(self, request: Request, call_next):
        ip = request.client.host if request.client else "anon"
        now = time.time()
        history = [t for t in self.requests.get(ip, []) if now - t < self.window]
        if len(history) >= self.limit:
            return Response("rate limit exceeded", status_code=429)
        history.append(now)
        self.requests[ip] = history
        return await call_next(request)


class PlanAPI:
    """Provides REST endpoints for workout plans and their generated workouts."""

    def __init__(
        self,
        db_path: str = "workout.db",
        yaml_path: str = "settings.yaml",
        *,
        rate_limit: int | None = None,
        rate_window: int = 60,
    ) -> None:
        self.db_path = db_path
        self.settings = SettingsRepository(db_path, yaml_path)
        timeout = self.settings.get_float("sqlite_timeout", 5.0)
        self.plans = WorkoutPlanRepository(db_path, timeout)
        self.workouts = PlanWorkoutRepository(db_path, timeout)
        self.exercises = PlanExerciseRepository(db_path, timeout)
        self.generator = WorkoutGenerationService(
            self.workouts,
            self.exercises,
            PlanLockRegistry(),
        )
        self.plan_service = PlanService(self.plans, self.generator, self.settings)
        self.app = FastAPI(
            title="Plan API",
            description="REST API for workout plans and generated workouts",
        )
        if rate_limit is not None:
            limiter = RateLimiter(limit=rate_limit, window=rate_window)
            self.app.middleware("http")(limiter)
        self._setup_routes()

    def _workout_dict(self, row: tuple) -> dict:
        wid, plan_id, day, muscle_group, created_at = row
        return {
            "id": wid,
            "plan_id": plan_id,
            "day": day,
            "muscle_group": muscle_group,
            "created_at": created_at,
            "exercises": self.exercises.fetch_for_workout(wid),
        }

    def _check_api_key(self, x_api_key: str | None = Header(None)) -> None:
        token = self.settings.get_text("api_token", "")
        if token and x_api_key != token:
            raise HTTPException(status_code=401, detail="invalid api key")

    def _setup_routes(self) -> None:
        guarded = [Depends(self._check_api_key)]

        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and database connectivity.",
        )
        def health():
            """Return API and database connection status."""
            try:
                self.plans.fetch_all("SELECT 1;")
                return {"status": "ok"}
            except Exception as e:  # pragma: no cover - connectivity failure
                raise HTTPException(status_code=500, detail=str(e))

        @self.app.post("/plans", dependencies=guarded)
        def create_plan(
            user_id: int = Body(...),
            name: str = Body(...),
            plan_details: str = Body(""),
            is_active: bool = Body(False),
        ):
            return self.plan_service.create_plan(user_id, name, plan_details, is_active)

        @self.app.post("/plans/parse")
        def parse_plan(plan_details: str = Body(..., embed=True)):
            return [day.as_dict() for day in parse(plan_details)]

        @self.app.get("/plans/user/{user_id}")
        def list_user_plans(user_id: int):
            return self.plans.fetch_for_user(user_id)

        @self.app.get("/plans/user/{user_id}/active")
        def get_active_plan(user_id: int):
            plan = self.plans.fetch_active(user_id)
            if plan is None:
                raise HTTPException(status_code=404, detail="no active plan found")
            return plan

        @self.app.get("/plans/{plan_id}")
        def get_plan(plan_id: int):
            try:
                return self.plans.fetch_detail(plan_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @self.app.put("/plans/{plan_id}", dependencies=guarded)
        def update_plan(
            plan_id: int,
            name: str | None = Body(None),
            plan_details: str | None = Body(None),
            is_archived: bool | None = Body(None),
            completed_workouts: list | None = Body(None),
        ):
            try:
                return self.plan_service.update_plan(
                    plan_id,
                    name=name,
                    plan_details=plan_details,
                    is_archived=is_archived,
                    completed_workouts=completed_workouts,
                )
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @self.app.delete("/plans/{plan_id}", dependencies=guarded)
        def delete_plan(plan_id: int):
            try:
                self.plans.delete(plan_id)
                return {"status": "deleted"}
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @self.app.put("/plans/{plan_id}/activate", dependencies=guarded)
        def activate_plan(plan_id: int):
            try:
                return self.plan_service.activate_plan(plan_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @self.app.post("/plans/{plan_id}/update_exercise_weight", dependencies=guarded)
        def update_exercise_weight(
            plan_id: int,
            exercise_name: str = Body(...),
            new_weight: float = Body(...),
        ):
            try:
                return self.plan_service.update_exercise_weight(
                    plan_id, exercise_name, new_weight
                )
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @self.app.post("/plans/{plan_id}/generate", dependencies=guarded)
        def generate_workouts(plan_id: int):
            try:
                return self.plan_service.regenerate(plan_id)
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))
            except GenerationError as e:
                raise HTTPException(status_code=500, detail=e.as_dict())

        @self.app.get("/workouts/plan/{plan_id}")
        def list_plan_workouts(plan_id: int):
            return [self._workout_dict(row) for row in self.workouts.fetch_for_plan(plan_id)]

        @self.app.get("/workouts/{workout_id}")
        def get_workout(workout_id: int):
            try:
                return self._workout_dict(self.workouts.fetch_detail(workout_id))
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))

        @self.app.put("/workouts/{workout_id}", dependencies=guarded)
        def update_workout(workout_id: int, muscle_group: str = Body(..., embed=True)):
            try:
                self.workouts.set_muscle_group(workout_id, muscle_group)
                return self._workout_dict(self.workouts.fetch_detail(workout_id))
            except ValueError as e:
                raise HTTPException(status_code=404, detail=str(e))


api = PlanAPI(db_path=os.environ.get("DB_PATH", "workout.db"))
app = api.app

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app)
