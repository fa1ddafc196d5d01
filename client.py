import requests
from typing import Optional


class FitClient:
    """Simple REST client for the fitness API."""

    def __init__(self, base_url: str = "http://localhost:8000") -> None:
        self.base_url = base_url.rstrip("/")
        self.token: Optional[str] = None

    def _headers(self) -> dict:
        if self.token is None:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def sign_up(self, email: str, password: str, name: Optional[str] = None) -> int:
        resp = requests.post(
            f"{self.base_url}/auth/signup",
            params={"email": email, "password": password, "name": name},
        )
        resp.raise_for_status()
        return resp.json()["id"]

    def sign_in(self, email: str, password: str) -> str:
        resp = requests.post(
            f"{self.base_url}/auth/signin",
            params={"email": email, "password": password},
        )
        resp.raise_for_status()
        self.token = resp.json()["token"]
        return self.token

    def sign_out(self) -> None:
        resp = requests.post(f"{self.base_url}/auth/signout", headers=self._headers())
        resp.raise_for_status()
        self.token = None

    def create_routine(self, name: str, **params) -> int:
        resp = requests.post(
            f"{self.base_url}/routines",
            params={"name": name, **params},
            headers=self._headers(),
        )
        resp.raise_for_status()
        return resp.json()["id"]

    def activate_routine(self, routine_id: int) -> None:
        resp = requests.post(
            f"{self.base_url}/routines/{routine_id}/activate", headers=self._headers()
        )
        resp.raise_for_status()

    def add_day(self, routine_id: int, day_number: int, day_name: str, **params) -> int:
        resp = requests.post(
            f"{self.base_url}/routines/{routine_id}/days",
            params={"day_number": day_number, "day_name": day_name, **params},
            headers=self._headers(),
        )
        resp.raise_for_status()
        return resp.json()["id"]

    def add_exercise(self, day_id: int, name: str, sets: int, reps: str, **params) -> int:
        resp = requests.post(
            f"{self.base_url}/days/{day_id}/exercises",
            params={"name": name, "sets": sets, "reps": reps, **params},
            headers=self._headers(),
        )
        resp.raise_for_status()
        return resp.json()["id"]

    def record_workout(self, workout_date: str, workout_name: str, **params) -> int:
        resp = requests.post(
            f"{self.base_url}/history",
            params={"workout_date": workout_date, "workout_name": workout_name, **params},
            headers=self._headers(),
        )
        resp.raise_for_status()
        return resp.json()["id"]

    def adherence(self, today: Optional[str] = None) -> dict:
        params = {"today": today} if today else {}
        resp = requests.get(
            f"{self.base_url}/stats/adherence", params=params, headers=self._headers()
        )
        resp.raise_for_status()
        return resp.json()
