"""
Typed arguments for every tool action.

The model's arguments are untrusted input. Each action has a request model
that validates ids, names, numbers and enums before anything reaches the
store; ``apply`` then runs the data operation for the calling user and
wraps the outcome in a ``ToolResult``.
"""

import re
from datetime import date, datetime, timezone
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator

from agent.models import ToolResult
from backend.core.store import TrainingStore

UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


def _check_uuid(value: str) -> str:
    if not UUID_RE.match(value):
        raise ValueError("must be a valid UUID")
    return value.lower()


def _check_name(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be empty")
    return value


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


Id = Annotated[str, AfterValidator(_check_uuid)]
Name = Annotated[str, AfterValidator(_check_name), Field(max_length=200)]
Text = Annotated[str, Field(max_length=4000)]
Position = Annotated[int, Field(ge=1)]
NonNegativeInt = Annotated[int, Field(ge=0)]
NonNegativeFloat = Annotated[float, Field(ge=0)]

Category = Literal["strength", "cardio", "flexibility", "balance", "sports"]
GroupType = Literal["single", "superset", "triset", "circuit"]
DayOfWeek = Literal["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


class ToolArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")

    async def apply(self, store: TrainingStore, user_id: str) -> ToolResult:
        raise NotImplementedError


class UpdateArgs(ToolArgs):
    """An update names the row by ``key`` and changes whatever else is given."""

    key: ClassVar[str]

    @model_validator(mode="after")
    def require_changes(self):
        if not self.changes():
            raise ValueError("at least one field to update is required")
        return self

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude={self.key}, exclude_none=True)


# ----------------------------------------------------------------------
# Workouts
# ----------------------------------------------------------------------

class ListWorkouts(ToolArgs):
    async def apply(self, store, user_id):
        workouts = await store.list_workouts(user_id)
        return ToolResult.ok(workouts, f"Found {len(workouts)} workout(s)")


class GetWorkout(ToolArgs):
    workout_id: Id

    async def apply(self, store, user_id):
        return ToolResult.ok(await store.get_workout(user_id, self.workout_id))


class CreateWorkout(ToolArgs):
    name: Name
    summary: Optional[Text] = None

    async def apply(self, store, user_id):
        workout = await store.create_workout(user_id, self.name, self.summary)
        return ToolResult.ok(workout, f"Workout '{workout['name']}' created")


class UpdateWorkout(UpdateArgs):
    key = "workout_id"

    workout_id: Id
    name: Optional[Name] = None
    summary: Optional[Text] = None

    async def apply(self, store, user_id):
        workout = await store.update_workout(user_id, self.workout_id, self.changes())
        return ToolResult.ok(workout, "Workout updated")


class DeleteWorkout(ToolArgs):
    workout_id: Id

    async def apply(self, store, user_id):
        await store.delete_workout(user_id, self.workout_id)
        return ToolResult.ok(message="Workout deleted")


# ----------------------------------------------------------------------
# Exercises
# ----------------------------------------------------------------------

class ListExercises(ToolArgs):
    async def apply(self, store, user_id):
        exercises = await store.list_exercises(user_id)
        return ToolResult.ok(exercises, f"Found {len(exercises)} exercise(s)")


class CreateExercise(ToolArgs):
    name: Name
    category: Category = "strength"
    instructions: Optional[Text] = None

    async def apply(self, store, user_id):
        exercise = await store.create_exercise(user_id, self.name, self.category, self.instructions)
        return ToolResult.ok(exercise, f"Exercise '{exercise['name']}' created")


class UpdateExercise(UpdateArgs):
    key = "exercise_id"

    exercise_id: Id
    name: Optional[Name] = None
    category: Optional[Category] = None
    instructions: Optional[Text] = None

    async def apply(self, store, user_id):
        exercise = await store.update_exercise(user_id, self.exercise_id, self.changes())
        return ToolResult.ok(exercise, "Exercise updated")


class DeleteExercise(ToolArgs):
    exercise_id: Id

    async def apply(self, store, user_id):
        await store.delete_exercise(user_id, self.exercise_id)
        return ToolResult.ok(message="Exercise deleted")


# ----------------------------------------------------------------------
# Workout days, groups and items
# ----------------------------------------------------------------------

class CreateWorkoutDay(ToolArgs):
    workout_id: Id
    dow: DayOfWeek
    position: Position = 1

    async def apply(self, store, user_id):
        day = await store.create_workout_day(user_id, self.workout_id, self.dow, self.position)
        return ToolResult.ok(day, f"{self.dow} added to workout")


class DeleteWorkoutDay(ToolArgs):
    workout_day_id: Id

    async def apply(self, store, user_id):
        await store.delete_workout_day(user_id, self.workout_day_id)
        return ToolResult.ok(message="Workout day deleted")


class CreateWorkoutGroup(ToolArgs):
    workout_day_id: Id
    name: Name
    group_type: GroupType = "single"
    rest_seconds: Optional[NonNegativeInt] = None
    position: Position = 1

    async def apply(self, store, user_id):
        group = await store.create_workout_group(
            user_id, self.workout_day_id, self.name, self.group_type, self.rest_seconds, self.position
        )
        return ToolResult.ok(group, f"Group '{group['name']}' created")


class UpdateWorkoutGroup(UpdateArgs):
    key = "workout_group_id"

    workout_group_id: Id
    name: Optional[Name] = None
    group_type: Optional[GroupType] = None
    rest_seconds: Optional[NonNegativeInt] = None
    position: Optional[Position] = None

    async def apply(self, store, user_id):
        group = await store.update_workout_group(user_id, self.workout_group_id, self.changes())
        return ToolResult.ok(group, "Group updated")


class DeleteWorkoutGroup(ToolArgs):
    workout_group_id: Id

    async def apply(self, store, user_id):
        await store.delete_workout_group(user_id, self.workout_group_id)
        return ToolResult.ok(message="Group deleted")


class CreateWorkoutItem(ToolArgs):
    workout_group_id: Id
    exercise_id: Id
    position: Position = 1
    target_sets: Optional[NonNegativeInt] = None
    target_reps: Optional[NonNegativeInt] = None
    target_weight: Optional[NonNegativeFloat] = None
    rest_seconds_override: Optional[NonNegativeInt] = None
    notes: Optional[Text] = None

    async def apply(self, store, user_id):
        fields = self.model_dump(exclude={"workout_group_id", "exercise_id"})
        item = await store.create_workout_item(user_id, self.workout_group_id, self.exercise_id, **fields)
        return ToolResult.ok(item, "Exercise added to group")


class UpdateWorkoutItem(UpdateArgs):
    key = "workout_item_id"

    workout_item_id: Id
    position: Optional[Position] = None
    target_sets: Optional[NonNegativeInt] = None
    target_reps: Optional[NonNegativeInt] = None
    target_weight: Optional[NonNegativeFloat] = None
    rest_seconds_override: Optional[NonNegativeInt] = None
    notes: Optional[Text] = None

    async def apply(self, store, user_id):
        item = await store.update_workout_item(user_id, self.workout_item_id, self.changes())
        return ToolResult.ok(item, "Workout item updated")


class DeleteWorkoutItem(ToolArgs):
    workout_item_id: Id

    async def apply(self, store, user_id):
        await store.delete_workout_item(user_id, self.workout_item_id)
        return ToolResult.ok(message="Workout item deleted")


# ----------------------------------------------------------------------
# Plans
# ----------------------------------------------------------------------

class ListPlans(ToolArgs):
    active_only: bool = False

    async def apply(self, store, user_id):
        plans = await store.list_plans(user_id, self.active_only)
        return ToolResult.ok(plans, f"Found {len(plans)} plan(s)")


class CreatePlan(ToolArgs):
    name: Name
    workout_id: Id
    duration_weeks: Annotated[int, Field(ge=1)]
    start_date: Optional[date] = None

    async def apply(self, store, user_id):
        plan = await store.create_plan(user_id, self.name, self.workout_id, self.duration_weeks, self.start_date)
        return ToolResult.ok(plan, f"Plan '{plan['name']}' created")


class UpdatePlan(UpdateArgs):
    key = "plan_id"

    plan_id: Id
    name: Optional[Name] = None
    is_active: Optional[bool] = None
    duration_weeks: Optional[Annotated[int, Field(ge=1)]] = None
    start_date: Optional[date] = None

    async def apply(self, store, user_id):
        plan = await store.update_plan(user_id, self.plan_id, self.changes())
        return ToolResult.ok(plan, "Plan updated")


class DeletePlan(ToolArgs):
    plan_id: Id

    async def apply(self, store, user_id):
        await store.delete_plan(user_id, self.plan_id)
        return ToolResult.ok(message="Plan deleted")


# ----------------------------------------------------------------------
# Sessions
# ----------------------------------------------------------------------

class ListSessions(ToolArgs):
    limit: Annotated[int, Field(ge=1, le=200)] = 50
    finished_only: bool = False

    async def apply(self, store, user_id):
        sessions = await store.list_sessions(user_id, self.limit, self.finished_only)
        return ToolResult.ok(sessions, f"Found {len(sessions)} session(s)")


class GetSession(ToolArgs):
    session_id: Id

    async def apply(self, store, user_id):
        return ToolResult.ok(await store.get_session(user_id, self.session_id))


class CreateSession(ToolArgs):
    workout_id: Id
    title: Name
    plan_id: Optional[Id] = None
    day_dow: Optional[DayOfWeek] = None

    async def apply(self, store, user_id):
        session = await store.create_session(user_id, self.workout_id, self.title, self.plan_id, self.day_dow)
        return ToolResult.ok(session, f"Session '{session['title']}' started")


class FinishSession(ToolArgs):
    session_id: Id

    async def apply(self, store, user_id):
        session = await store.finish_session(user_id, self.session_id)
        return ToolResult.ok(session, f"Session finished with total volume {session['total_volume']}")


class DeleteSession(ToolArgs):
    session_id: Id

    async def apply(self, store, user_id):
        await store.delete_session(user_id, self.session_id)
        return ToolResult.ok(message="Session deleted")


class CreateSessionGroup(ToolArgs):
    session_id: Id
    name: Name
    group_type: GroupType = "single"
    rest_seconds: Optional[NonNegativeInt] = None
    position: Position = 1

    async def apply(self, store, user_id):
        group = await store.create_session_group(
            user_id, self.session_id, self.name, self.group_type, self.rest_seconds, self.position
        )
        return ToolResult.ok(group, f"Group '{group['name']}' added to session")


class CreateSessionItem(ToolArgs):
    session_group_id: Id
    exercise_name: Name
    position: Position = 1
    target_sets: Optional[NonNegativeInt] = None
    target_reps: Optional[NonNegativeInt] = None
    target_weight: Optional[NonNegativeFloat] = None
    rest_seconds: Optional[NonNegativeInt] = None
    notes: Optional[Text] = None

    async def apply(self, store, user_id):
        fields = self.model_dump(exclude={"session_group_id", "exercise_name"})
        item = await store.create_session_item(user_id, self.session_group_id, self.exercise_name, **fields)
        return ToolResult.ok(item, f"'{item['exercise_name']}' added to session")


# ----------------------------------------------------------------------
# Completed sets
# ----------------------------------------------------------------------

class LogSet(ToolArgs):
    session_item_id: Id
    set_number: Position
    weight: NonNegativeFloat
    reps: NonNegativeInt

    async def apply(self, store, user_id):
        completed = await store.log_set(user_id, self.session_item_id, self.set_number, self.weight, self.reps)
        return ToolResult.ok(completed, f"Set {self.set_number} logged: {self.reps} x {self.weight}")


class UpdateSet(UpdateArgs):
    key = "set_id"

    set_id: Id
    set_number: Optional[Position] = None
    weight: Optional[NonNegativeFloat] = None
    reps: Optional[NonNegativeInt] = None

    async def apply(self, store, user_id):
        completed = await store.update_set(user_id, self.set_id, self.changes())
        return ToolResult.ok(completed, "Set updated")


class DeleteSet(ToolArgs):
    set_id: Id

    async def apply(self, store, user_id):
        await store.delete_set(user_id, self.set_id)
        return ToolResult.ok(message="Set deleted")


# ----------------------------------------------------------------------
# User settings
# ----------------------------------------------------------------------

class GetUserSettings(ToolArgs):
    async def apply(self, store, user_id):
        return ToolResult.ok(await store.get_user_settings(user_id))


class UpdateUserSettings(ToolArgs):
    system_instructions: Optional[Text] = None

    async def apply(self, store, user_id):
        row = await store.update_user_settings(user_id, self.system_instructions)
        return ToolResult.ok(row, "Custom instructions saved")


# ----------------------------------------------------------------------
# Cascades
# ----------------------------------------------------------------------

class ItemTemplate(BaseModel):
    exercise_name: Name
    category: Category = "strength"
    instructions: Optional[Text] = None
    position: Position = 1
    target_sets: Optional[NonNegativeInt] = None
    target_reps: Optional[NonNegativeInt] = None
    target_weight: Optional[NonNegativeFloat] = None
    rest_seconds_override: Optional[NonNegativeInt] = None
    notes: Optional[Text] = None


class GroupTemplate(BaseModel):
    name: Name
    group_type: GroupType = "single"
    rest_seconds: Optional[NonNegativeInt] = None
    position: Position = 1
    workout_items: List[ItemTemplate] = []


class DayTemplate(BaseModel):
    dow: DayOfWeek
    position: Position = 1
    workout_groups: List[GroupTemplate] = []


class ImportWorkout(ToolArgs):
    name: Name
    summary: Optional[Text] = None
    workout_days: List[DayTemplate] = Field(min_length=1)

    async def apply(self, store, user_id):
        workout = await store.import_workout(user_id, self.model_dump())
        return ToolResult.ok(workout, f"Workout '{workout['name']}' imported")


class LoggedSet(BaseModel):
    set_number: Position
    reps: NonNegativeInt
    weight: NonNegativeFloat


class LoggedExercise(BaseModel):
    exercise_name: Name
    target_sets: Optional[NonNegativeInt] = None
    position: Position = 1
    sets: List[LoggedSet] = []


class LoggedGroup(BaseModel):
    name: Name
    group_type: GroupType = "single"
    position: Position = 1
    exercises: List[LoggedExercise] = []


class LogSession(ToolArgs):
    title: Name
    workout_id: Optional[Id] = None
    started_at: datetime
    finished_at: Optional[datetime] = None
    groups: List[LoggedGroup] = Field(min_length=1)

    @model_validator(mode="after")
    def check_times(self):
        if self.finished_at is not None and _as_utc(self.finished_at) < _as_utc(self.started_at):
            raise ValueError("finished_at must not be before started_at")
        return self

    async def apply(self, store, user_id):
        session = await store.log_session(user_id, self.model_dump())
        return ToolResult.ok(session, f"Session logged with total volume {session['total_volume']}")


class GetTrainingSummary(ToolArgs):
    async def apply(self, store, user_id):
        summary = await store.training_summary(user_id)
        return ToolResult.ok(
            summary,
            f"{len(summary['sessions'])} recent session(s), {len(summary['workouts'])} workout(s), "
            f"{len(summary['plans'])} plan(s)",
        )
