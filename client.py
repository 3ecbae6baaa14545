import requests
from typing import Optional


class PlanClient:
    """Simple REST client for the plan API."""

    def __init__(self, base_url: str = "http://localhost:8000", api_key: Optional[str] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers = {"X-API-Key": api_key} if api_key else {}

    def create_plan(self, user_id: int, name: str, plan_details: str, is_active: bool = False) -> dict:
        resp = requests.post(
            f"{self.base_url}/plans",
            json={
                "user_id": user_id,
                "name": name,
                "plan_details": plan_details,
                "is_active": is_active,
            },
            headers=self.headers,
        )
        resp.raise_for_status()
        return resp.json()

    def update_plan_details(self, plan_id: int, plan_details: str) -> dict:
        resp = requests.put(
            f"{self.base_url}/plans/{plan_id}",
            json={"plan_details": plan_details},
            headers=self.headers,
        )
        resp.raise_for_status()
        return resp.json()

    def generate(self, plan_id: int) -> dict:
        resp = requests.post(f"{self.base_url}/plans/{plan_id}/generate", headers=self.headers)
        resp.raise_for_status()
        return resp.json()

    def list_workouts(self, plan_id: int) -> list:
        resp = requests.get(f"{self.base_url}/workouts/plan/{plan_id}")
        resp.raise_for_status()
        return resp.json()
