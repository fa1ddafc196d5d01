import datetime
import time
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from fastapi import (
    FastAPI,
    HTTPException,
    Response,
    Body,
    APIRouter,
    Request,
    Header,
    Depends,
)
from db import (
    UserRepository,
    AuthSessionRepository,
    ProfileRepository,
    RoutineRepository,
    WorkoutDayRepository,
    ExerciseRepository,
    WorkoutHistoryRepository,
    WorkoutFeedbackRepository,
    SettingsRepository,
)
from auth_service import AuthService
from avatar_service import AvatarService
from execution_service import ExecutionManager, WorkoutEvents
from exercise_parser import ExerciseTextParser
from stats_service import StatisticsService


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


def _http_error(e: ValueError) -> HTTPException:
    message = str(e)
    status = 404 if "not found" in message else 400
    return HTTPException(status_code=status, detail=message)


def _parse_today(today: str | None) -> datetime.date | None:
    if today is None:
        return None
    try:
        return datetime.date.fromisoformat(today)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"invalid date: {today}")


class FitAPI:
    """Provides REST endpoints for routines, workouts and adherence stats."""

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
        self.users = UserRepository(db_path)
        self.auth_sessions = AuthSessionRepository(db_path)
        self.profiles = ProfileRepository(db_path)
        self.routines = RoutineRepository(db_path)
        self.days = WorkoutDayRepository(db_path)
        self.exercises = ExerciseRepository(db_path)
        self.history = WorkoutHistoryRepository(db_path)
        self.feedback = WorkoutFeedbackRepository(db_path)
        self.events = WorkoutEvents()
        self.auth = AuthService(
            self.users, self.auth_sessions, self.profiles, self.settings
        )
        self.avatars = AvatarService(self.profiles, self.settings)
        self.statistics = StatisticsService(
            self.routines, self.days, self.exercises, self.history, self.settings
        )
        self.executions = ExecutionManager(
            self.days, self.exercises, self.history, self.events
        )
        self.app = FastAPI(
            title="Massive Fit API",
            description="REST API for workout routines, execution and adherence statistics",
        )
        if rate_limit is not None:
            limiter = RateLimiter(limit=rate_limit, window=rate_window)
            self.app.middleware("http")(limiter)
        self._setup_routes()

    def _own_routine(self, user: dict, routine_id: int) -> dict:
        try:
            routine = self.routines.fetch_detail(routine_id)
        except ValueError as e:
            raise _http_error(e)
        if routine["user_id"] != user["id"]:
            raise HTTPException(status_code=404, detail="routine not found")
        return routine

    def _own_day(self, user: dict, day_id: int) -> dict:
        try:
            day = self.days.fetch_detail(day_id)
        except ValueError as e:
            raise _http_error(e)
        routine = self.routines.fetch_detail(day["routine_id"])
        if routine["user_id"] != user["id"]:
            raise HTTPException(status_code=404, detail="workout day not found")
        return day

    def _own_exercise(self, user: dict, exercise_id: int) -> dict:
        try:
            exercise = self.exercises.fetch_detail(exercise_id)
        except ValueError as e:
            raise _http_error(e)
        self._own_day(user, exercise["workout_day_id"])
        return exercise

    def _own_history(self, user: dict, history_id: int) -> dict:
        try:
            entry = self.history.fetch_detail(history_id)
        except ValueError as e:
            raise _http_error(e)
        if entry["user_id"] != user["id"]:
            raise HTTPException(status_code=404, detail="workout history not found")
        return entry

    def _setup_routes(self) -> None:
        auth_router = APIRouter(prefix="/auth", tags=["Auth"])
        routines_router = APIRouter(prefix="/routines", tags=["Routines"])
        days_router = APIRouter(prefix="/days", tags=["Workout Days"])
        history_router = APIRouter(prefix="/history", tags=["History"])
        stats_router = APIRouter(prefix="/stats", tags=["Statistics"])
        executions_router = APIRouter(prefix="/executions", tags=["Execution"])
        profile_router = APIRouter(prefix="/profile", tags=["Profile"])

        def bearer_token(authorization: str | None = Header(None)) -> str | None:
            if authorization and authorization.lower().startswith("bearer "):
                return authorization[7:].strip()
            return None

        def current_user(token: str | None = Depends(bearer_token)) -> dict:
            user = self.auth.current_user(token)
            if user is None:
                raise HTTPException(status_code=401, detail="not authenticated")
            return user

        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and database connectivity.",
        )
        def health():
            """Return API and database connection status."""
            try:
                self.settings.fetch_all("SELECT 1;")
                return {"status": "ok"}
            except Exception as e:  # pragma: no cover - connectivity failure
                raise HTTPException(status_code=500, detail=str(e))

        @auth_router.post("/signup")
        def sign_up(email: str, password: str, name: str = None):
            try:
                uid = self.auth.sign_up(email, password, name)
                return {"id": uid}
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @auth_router.post("/signin")
        def sign_in(email: str, password: str):
            try:
                return {"token": self.auth.sign_in(email, password)}
            except ValueError as e:
                raise HTTPException(status_code=401, detail=str(e))

        @auth_router.post("/signout")
        def sign_out(token: str | None = Depends(bearer_token)):
            if token:
                self.auth.sign_out(token)
            return {"status": "signed out"}

        @auth_router.get("/me")
        def me(user: dict = Depends(current_user)):
            return user

        @routines_router.get("")
        def list_routines(user: dict = Depends(current_user)):
            return self.routines.fetch_for_user(user["id"])

        @routines_router.post("")
        def create_routine(
            name: str,
            description: str = None,
            total_weeks: int = 1,
            user: dict = Depends(current_user),
        ):
            try:
                rid = self.routines.create(user["id"], name, description, total_weeks)
                return {"id": rid}
            except ValueError as e:
                raise _http_error(e)

        @routines_router.get("/active")
        def active_routine(user: dict = Depends(current_user)):
            return self.routines.fetch_active(user["id"])

        @routines_router.get("/{routine_id}")
        def get_routine(routine_id: int, user: dict = Depends(current_user)):
            routine = self._own_routine(user, routine_id)
            routine["days"] = self.days.fetch_for_routine(routine_id)
            return routine

        @routines_router.put("/{routine_id}")
        def update_routine(
            routine_id: int,
            name: str = None,
            description: str = None,
            total_weeks: int = None,
            user: dict = Depends(current_user),
        ):
            self._own_routine(user, routine_id)
            try:
                self.routines.update(routine_id, name, description, total_weeks)
                return {"status": "updated"}
            except ValueError as e:
                raise _http_error(e)

        @routines_router.delete("/{routine_id}")
        def delete_routine(routine_id: int, user: dict = Depends(current_user)):
            self._own_routine(user, routine_id)
            self.routines.delete(routine_id)
            return {"status": "deleted"}

        @routines_router.post("/{routine_id}/activate")
        def activate_routine(routine_id: int, user: dict = Depends(current_user)):
            self._own_routine(user, routine_id)
            self.routines.set_active(user["id"], routine_id)
            return {"status": "activated"}

        @routines_router.get("/{routine_id}/days")
        def list_days(
            routine_id: int,
            week_number: int = None,
            user: dict = Depends(current_user),
        ):
            self._own_routine(user, routine_id)
            return self.days.fetch_for_routine(routine_id, week_number)

        @routines_router.post("/{routine_id}/days")
        def add_day(
            routine_id: int,
            day_number: int,
            day_name: str,
            week_number: int = 1,
            is_rest_day: bool = False,
            user: dict = Depends(current_user),
        ):
            self._own_routine(user, routine_id)
            try:
                did = self.days.add(
                    routine_id, day_number, day_name, week_number, is_rest_day
                )
                return {"id": did}
            except ValueError as e:
                raise _http_error(e)

        @days_router.get("/{day_id}")
        def get_day(day_id: int, user: dict = Depends(current_user)):
            day = self._own_day(user, day_id)
            day["exercises"] = self.exercises.fetch_for_day(day_id)
            return day

        @days_router.put("/{day_id}")
        def update_day(
            day_id: int,
            day_name: str = None,
            is_rest_day: bool = None,
            user: dict = Depends(current_user),
        ):
            self._own_day(user, day_id)
            try:
                self.days.update(day_id, day_name, is_rest_day)
                return {"status": "updated"}
            except ValueError as e:
                raise _http_error(e)

        @days_router.delete("/{day_id}")
        def delete_day(day_id: int, user: dict = Depends(current_user)):
            self._own_day(user, day_id)
            self.days.delete(day_id)
            return {"status": "deleted"}

        @days_router.get("/{day_id}/exercises")
        def list_exercises(day_id: int, user: dict = Depends(current_user)):
            self._own_day(user, day_id)
            return self.exercises.fetch_for_day(day_id)

        @days_router.post("/{day_id}/exercises")
        def add_exercise(
            day_id: int,
            name: str,
            sets: int = 3,
            reps: str = "10",
            weight_kg: float = None,
            rest_seconds: int = None,
            video_url: str = None,
            execution_notes: str = None,
            exercise_order: int = None,
            user: dict = Depends(current_user),
        ):
            self._own_day(user, day_id)
            if rest_seconds is None:
                rest_seconds = self.settings.get_int("default_rest_seconds", 60)
            try:
                eid = self.exercises.add(
                    day_id,
                    name,
                    sets,
                    reps,
                    weight_kg=weight_kg,
                    rest_seconds=rest_seconds,
                    video_url=video_url,
                    execution_notes=execution_notes,
                    exercise_order=exercise_order,
                )
                return {"id": eid}
            except ValueError as e:
                raise _http_error(e)

        @days_router.post("/{day_id}/exercises/import")
        def import_exercises(
            day_id: int,
            text: str = Body(...),
            user: dict = Depends(current_user),
        ):
            self._own_day(user, day_id)
            parsed = ExerciseTextParser.parse(text)
            if not parsed:
                raise HTTPException(status_code=400, detail="no valid exercises found")
            records = ExerciseTextParser.to_exercise_records(
                parsed,
                self.settings.get_int("default_rest_seconds", 60),
                self.exercises.count_for_day(day_id) + 1,
            )
            try:
                ids = self.exercises.bulk_add(day_id, records)
            except ValueError as e:
                raise _http_error(e)
            return {"ids": ids}

        @self.app.put("/exercises/{exercise_id}", tags=["Exercises"])
        def update_exercise(
            exercise_id: int,
            name: str = None,
            sets: int = None,
            reps: str = None,
            weight_kg: float = None,
            rest_seconds: int = None,
            exercise_order: int = None,
            execution_notes: str = None,
            user: dict = Depends(current_user),
        ):
            self._own_exercise(user, exercise_id)
            fields = {
                k: v
                for k, v in {
                    "name": name,
                    "sets": sets,
                    "reps": reps,
                    "weight_kg": weight_kg,
                    "rest_seconds": rest_seconds,
                    "exercise_order": exercise_order,
                    "execution_notes": execution_notes,
                }.items()
                if v is not None
            }
            try:
                self.exercises.update(exercise_id, **fields)
                return {"status": "updated"}
            except ValueError as e:
                raise _http_error(e)

        @self.app.delete("/exercises/{exercise_id}", tags=["Exercises"])
        def delete_exercise(exercise_id: int, user: dict = Depends(current_user)):
            self._own_exercise(user, exercise_id)
            self.exercises.remove(exercise_id)
            return {"status": "deleted"}

        @history_router.get("")
        def list_history(
            search: str = None,
            period: str = "all",
            sort_by: str = "date_desc",
            today: str = None,
            user: dict = Depends(current_user),
        ):
            try:
                return self.statistics.filter_history(
                    user["id"], search, period, sort_by, _parse_today(today)
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @history_router.post("")
        def record_history(
            workout_date: str,
            workout_name: str,
            duration_minutes: int = 0,
            exercises_completed: int = 0,
            total_exercises: int = 0,
            user: dict = Depends(current_user),
        ):
            try:
                hid = self.history.record(
                    user["id"],
                    workout_date,
                    workout_name,
                    duration_minutes,
                    exercises_completed,
                    total_exercises,
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            self.events.emit(
                {"type": "workout_completed", "user_id": user["id"], "history_id": hid}
            )
            return {"id": hid}

        @history_router.delete("")
        def clear_history(user: dict = Depends(current_user)):
            self.history.delete_for_user(user["id"])
            return {"status": "deleted"}

        @history_router.delete("/{history_id}")
        def delete_history(history_id: int, user: dict = Depends(current_user)):
            self._own_history(user, history_id)
            self.history.delete(history_id)
            return {"status": "deleted"}

        @history_router.post("/{history_id}/feedback")
        def add_feedback(
            history_id: int,
            fatigue_level: int = None,
            pain_level: int = None,
            performance_rating: int = None,
            notes: str = None,
            user: dict = Depends(current_user),
        ):
            self._own_history(user, history_id)
            try:
                fid = self.feedback.add(
                    user["id"],
                    history_id,
                    fatigue_level,
                    pain_level,
                    performance_rating,
                    notes,
                )
                return {"id": fid}
            except ValueError as e:
                raise _http_error(e)

        @history_router.get("/{history_id}/feedback")
        def list_feedback(history_id: int, user: dict = Depends(current_user)):
            self._own_history(user, history_id)
            return self.feedback.fetch_for_history(history_id)

        @stats_router.get("/adherence")
        def adherence(today: str = None, user: dict = Depends(current_user)):
            return self.statistics.adherence(user["id"], _parse_today(today))

        @stats_router.get("/next_workout")
        def next_workout(today: str = None, user: dict = Depends(current_user)):
            return self.statistics.next_workout(user["id"], _parse_today(today))

        @stats_router.get("/history")
        def history_stats(today: str = None, user: dict = Depends(current_user)):
            return self.statistics.history_stats(user["id"], _parse_today(today))

        @stats_router.get("/schedule")
        def weekly_schedule(
            week_number: int = 1,
            today: str = None,
            user: dict = Depends(current_user),
        ):
            return self.statistics.weekly_schedule(
                user["id"], week_number, _parse_today(today)
            )

        @executions_router.post("")
        def start_execution(
            day_id: int, today: str = None, user: dict = Depends(current_user)
        ):
            self._own_day(user, day_id)
            try:
                exec_id = self.executions.start(
                    user["id"], day_id, _parse_today(today) or self.statistics.today()
                )
                return {"id": exec_id}
            except ValueError as e:
                raise _http_error(e)

        def _execution(user: dict, exec_id: int):
            try:
                return self.executions.get(user["id"], exec_id)
            except ValueError as e:
                raise _http_error(e)

        @executions_router.get("/{exec_id}")
        def get_execution(exec_id: int, user: dict = Depends(current_user)):
            return _execution(user, exec_id).summary()

        @executions_router.post("/{exec_id}/sets")
        def complete_set(exec_id: int, user: dict = Depends(current_user)):
            execution = _execution(user, exec_id)
            execution.complete_set()
            return execution.summary()

        @executions_router.post("/{exec_id}/complete_exercise")
        def complete_exercise(exec_id: int, user: dict = Depends(current_user)):
            execution = _execution(user, exec_id)
            execution.complete_exercise()
            return execution.summary()

        @executions_router.post("/{exec_id}/skip_rest")
        def skip_rest(exec_id: int, user: dict = Depends(current_user)):
            execution = _execution(user, exec_id)
            execution.skip_rest()
            return execution.summary()

        @executions_router.post("/{exec_id}/pause")
        def pause_execution(exec_id: int, user: dict = Depends(current_user)):
            execution = _execution(user, exec_id)
            execution.pause()
            return execution.summary()

        @executions_router.post("/{exec_id}/resume")
        def resume_execution(exec_id: int, user: dict = Depends(current_user)):
            execution = _execution(user, exec_id)
            execution.resume()
            return execution.summary()

        @executions_router.post("/{exec_id}/finish")
        def finish_execution(exec_id: int, user: dict = Depends(current_user)):
            try:
                return {"history_id": self.executions.finish(user["id"], exec_id)}
            except ValueError as e:
                raise _http_error(e)

        @executions_router.delete("/{exec_id}")
        def discard_execution(exec_id: int, user: dict = Depends(current_user)):
            try:
                self.executions.discard(user["id"], exec_id)
                return {"status": "discarded"}
            except ValueError as e:
                raise _http_error(e)

        @profile_router.get("")
        def get_profile(user: dict = Depends(current_user)):
            return self.profiles.fetch(user["id"])

        @profile_router.put("")
        def update_profile(
            name: str = None,
            age: int = None,
            height: float = None,
            weight: float = None,
            goal: str = None,
            experience_level: str = None,
            user: dict = Depends(current_user),
        ):
            fields = {
                k: v
                for k, v in {
                    "name": name,
                    "age": age,
                    "height": height,
                    "weight": weight,
                    "goal": goal,
                    "experience_level": experience_level,
                }.items()
                if v is not None
            }
            try:
                self.profiles.update(user["id"], **fields)
                return {"status": "updated"}
            except ValueError as e:
                raise _http_error(e)

        @profile_router.get("/avatar")
        def get_avatar(user: dict = Depends(current_user)):
            return Response(self.avatars.get(user["id"]), media_type="image/png")

        @profile_router.put("/avatar")
        async def upload_avatar(request: Request, user: dict = Depends(current_user)):
            data = await request.body()
            try:
                self.avatars.upload(user["id"], data)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"status": "uploaded"}

        @profile_router.delete("/avatar")
        def delete_avatar(user: dict = Depends(current_user)):
            self.avatars.remove(user["id"])
            return {"status": "deleted"}

        @self.app.get("/settings", tags=["Settings"])
        def get_settings(user: dict = Depends(current_user)):
            return self.settings.all_settings()

        @self.app.post("/settings/general", tags=["Settings"])
        def update_settings(
            refresh_interval_seconds: float = None,
            default_rest_seconds: int = None,
            session_ttl_days: int = None,
            timezone: str = None,
            language: str = None,
            weight_unit: str = None,
            auto_refresh_enabled: bool = None,
            user: dict = Depends(current_user),
        ):
            if refresh_interval_seconds is not None:
                if refresh_interval_seconds <= 0:
                    raise HTTPException(status_code=400, detail="invalid interval")
                self.settings.set_float("refresh_interval_seconds", refresh_interval_seconds)
            if default_rest_seconds is not None:
                if default_rest_seconds < 0:
                    raise HTTPException(status_code=400, detail="invalid rest")
                self.settings.set_int("default_rest_seconds", default_rest_seconds)
            if session_ttl_days is not None:
                if session_ttl_days < 1:
                    raise HTTPException(status_code=400, detail="invalid ttl")
                self.settings.set_int("session_ttl_days", session_ttl_days)
            if timezone is not None:
                try:
                    ZoneInfo(timezone)
                except (ZoneInfoNotFoundError, ValueError):
                    raise HTTPException(status_code=400, detail="invalid timezone")
                self.settings.set_text("timezone", timezone)
            if language is not None:
                self.settings.set_text("language", language)
            if weight_unit is not None:
                if weight_unit not in {"kg", "lb"}:
                    raise HTTPException(status_code=400, detail="invalid unit")
                self.settings.set_text("weight_unit", weight_unit)
            if auto_refresh_enabled is not None:
                self.settings.set_bool("auto_refresh_enabled", auto_refresh_enabled)
            return {"status": "updated"}

        self.app.include_router(auth_router)
        self.app.include_router(routines_router)
        self.app.include_router(days_router)
        self.app.include_router(history_router)
        self.app.include_router(stats_router)
        self.app.include_router(executions_router)
        self.app.include_router(profile_router)


api = FitAPI()
app = api.app

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app)
