import uuid
from typing import Optional
from datetime import date, datetime, timezone
from sqlalchemy import CheckConstraint, UniqueConstraint
from sqlmodel import Field, SQLModel


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Workout templates: workouts -> workout_days -> workout_groups -> workout_items

class Workout(SQLModel, table=True):
    __tablename__ = "workouts"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    name: str
    summary: Optional[str] = None
    updated_at: datetime = Field(default_factory=utcnow)
    deleted_at: Optional[datetime] = None


class Exercise(SQLModel, table=True):
    __tablename__ = "exercises"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    name: str = Field(index=True)
    category: str = "strength"
    instructions: Optional[str] = None
    updated_at: datetime = Field(default_factory=utcnow)
    deleted_at: Optional[datetime] = None


class WorkoutDay(SQLModel, table=True):
    __tablename__ = "workout_days"

    id: str = Field(default_factory=new_id, primary_key=True)
    workout_id: str = Field(foreign_key="workouts.id", index=True)
    dow: str
    position: int = 1
    updated_at: datetime = Field(default_factory=utcnow)
    deleted_at: Optional[datetime] = None


class WorkoutGroup(SQLModel, table=True):
    __tablename__ = "workout_groups"

    id: str = Field(default_factory=new_id, primary_key=True)
    workout_day_id: str = Field(foreign_key="workout_days.id", index=True)
    name: str
    group_type: str
    rest_seconds: Optional[int] = None
    position: int = 1
    updated_at: datetime = Field(default_factory=utcnow)
    deleted_at: Optional[datetime] = None


class WorkoutItem(SQLModel, table=True):
    __tablename__ = "workout_items"

    id: str = Field(default_factory=new_id, primary_key=True)
    workout_group_id: str = Field(foreign_key="workout_groups.id", index=True)
    exercise_id: str = Field(foreign_key="exercises.id")
    position: int = 1
    target_sets: Optional[int] = None
    target_reps: Optional[int] = None
    target_weight: Optional[float] = None
    rest_seconds_override: Optional[int] = None
    notes: Optional[str] = None
    updated_at: datetime = Field(default_factory=utcnow)
    deleted_at: Optional[datetime] = None


class Plan(SQLModel, table=True):
    __tablename__ = "plans"
    __table_args__ = (CheckConstraint("duration_weeks > 0", name="plans_duration_positive"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    workout_id: str = Field(foreign_key="workouts.id")
    name: str
    start_date: date = Field(default_factory=date.today)
    duration_weeks: int
    is_active: bool = True
    updated_at: datetime = Field(default_factory=utcnow)
    deleted_at: Optional[datetime] = None


# Logged training: sessions -> session_groups -> session_items -> completed_sets

class WorkoutSession(SQLModel, table=True):
    __tablename__ = "sessions"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    # Ad-hoc sessions logged after the fact have no template.
    workout_id: Optional[str] = Field(default=None, foreign_key="workouts.id")
    plan_id: Optional[str] = Field(default=None, foreign_key="plans.id")
    title: str
    day_dow: Optional[str] = None
    started_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None
    total_volume: Optional[float] = None
    updated_at: datetime = Field(default_factory=utcnow)


class SessionGroup(SQLModel, table=True):
    __tablename__ = "session_groups"

    id: str = Field(default_factory=new_id, primary_key=True)
    session_id: str = Field(foreign_key="sessions.id", index=True)
    name: str
    group_type: str
    rest_seconds: Optional[int] = None
    position: int = 1
    updated_at: datetime = Field(default_factory=utcnow)


class SessionItem(SQLModel, table=True):
    __tablename__ = "session_items"

    id: str = Field(default_factory=new_id, primary_key=True)
    session_group_id: str = Field(foreign_key="session_groups.id", index=True)
    exercise_name: str
    position: int = 1
    target_sets: Optional[int] = None
    target_reps: Optional[int] = None
    target_weight: Optional[float] = None
    rest_seconds: Optional[int] = None
    notes: Optional[str] = None
    updated_at: datetime = Field(default_factory=utcnow)


class CompletedSet(SQLModel, table=True):
    __tablename__ = "completed_sets"
    __table_args__ = (
        CheckConstraint("reps >= 0", name="completed_sets_reps_non_negative"),
        CheckConstraint("weight >= 0", name="completed_sets_weight_non_negative"),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    session_item_id: str = Field(foreign_key="session_items.id", index=True)
    set_number: int
    weight: float
    reps: int
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class UserSettings(SQLModel, table=True):
    __tablename__ = "user_settings"
    __table_args__ = (UniqueConstraint("user_id", name="user_settings_user_id_key"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    system_instructions: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
