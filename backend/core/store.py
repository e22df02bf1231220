"""
Training data store.

Every method is scoped to the calling user: rows are filtered by
``user_id`` directly or through their parent chain, and soft-deleted rows
are invisible. Each call runs in its own ``AsyncSession`` so that several
tool calls can use the store concurrently.
"""

from collections import defaultdict
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Type

from sqlalchemy import func
from sqlmodel import SQLModel, col, delete, select
from sqlmodel.ext.asyncio.session import AsyncSession

from backend.core.database import async_session
from backend.models import (
    CompletedSet,
    Exercise,
    Plan,
    SessionGroup,
    SessionItem,
    UserSettings,
    Workout,
    WorkoutDay,
    WorkoutGroup,
    WorkoutItem,
    WorkoutSession,
    utcnow,
)
from core.errors import NotFoundError, PermissionDeniedError
from core.logger import logger

# child model -> (foreign key column, parent model)
PARENTS: Dict[Type[SQLModel], tuple] = {
    WorkoutDay: ("workout_id", Workout),
    WorkoutGroup: ("workout_day_id", WorkoutDay),
    WorkoutItem: ("workout_group_id", WorkoutGroup),
    SessionGroup: ("session_id", WorkoutSession),
    SessionItem: ("session_group_id", SessionGroup),
    CompletedSet: ("session_item_id", SessionItem),
}

LABELS: Dict[Type[SQLModel], str] = {
    Workout: "Workout",
    Exercise: "Exercise",
    WorkoutDay: "Workout day",
    WorkoutGroup: "Workout group",
    WorkoutItem: "Workout item",
    Plan: "Plan",
    WorkoutSession: "Session",
    SessionGroup: "Session group",
    SessionItem: "Session item",
    CompletedSet: "Set",
}


def _dump(row: SQLModel) -> Dict[str, Any]:
    return row.model_dump(mode="json")


def _is_deleted(row: SQLModel) -> bool:
    return getattr(row, "deleted_at", None) is not None


def _by(rows: Iterable[SQLModel], key: str) -> Dict[str, List[SQLModel]]:
    grouped: Dict[str, List[SQLModel]] = defaultdict(list)
    for row in rows:
        grouped[getattr(row, key)].append(row)
    return grouped


class TrainingStore:
    def __init__(self, session_factory=async_session):
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # Ownership helpers
    # ------------------------------------------------------------------

    async def _load(self, session: AsyncSession, model: Type[SQLModel], row_id: str, user_id: str, parent: bool = False):
        """
        Load a row and walk up its parent chain to the owning user.

        A missing or soft-deleted row (or ancestor) is reported as not found.
        A row owned by someone else is also not found, unless it is being
        used as the parent of a new row, which is a permission error.
        """
        label = LABELS[model]
        row = await session.get(model, row_id)
        node = row
        while node is not None and not _is_deleted(node):
            link = PARENTS.get(type(node))
            if link is None:
                break
            fk, parent_model = link
            node = await session.get(parent_model, getattr(node, fk))

        if node is None or _is_deleted(node):
            raise NotFoundError(f"{label} not found", details=f"{model.__tablename__}.id = {row_id}")
        if node.user_id != user_id:
            if parent:
                raise PermissionDeniedError(
                    f"{label} belongs to another user", details=f"{model.__tablename__}.id = {row_id}"
                )
            raise NotFoundError(f"{label} not found", details=f"{model.__tablename__}.id = {row_id}")
        return row

    async def _save(self, session: AsyncSession, row: SQLModel) -> Dict[str, Any]:
        session.add(row)
        await session.commit()
        await session.refresh(row)
        return _dump(row)

    async def _update(self, model: Type[SQLModel], row_id: str, user_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        async with self.session_factory() as session:
            row = await self._load(session, model, row_id, user_id)
            for key, value in changes.items():
                setattr(row, key, value)
            row.updated_at = utcnow()
            return await self._save(session, row)

    async def _soft_delete(self, model: Type[SQLModel], row_id: str, user_id: str) -> None:
        async with self.session_factory() as session:
            row = await self._load(session, model, row_id, user_id)
            row.deleted_at = utcnow()
            row.updated_at = row.deleted_at
            session.add(row)
            await session.commit()

    # ------------------------------------------------------------------
    # Workouts
    # ------------------------------------------------------------------

    async def _workout_trees(self, session: AsyncSession, workouts: List[Workout]) -> List[Dict[str, Any]]:
        workout_ids = [w.id for w in workouts]
        days = (await session.exec(
            select(WorkoutDay)
            .where(col(WorkoutDay.workout_id).in_(workout_ids), col(WorkoutDay.deleted_at).is_(None))
            .order_by(WorkoutDay.position)
        )).all()
        groups = (await session.exec(
            select(WorkoutGroup)
            .where(col(WorkoutGroup.workout_day_id).in_([d.id for d in days]), col(WorkoutGroup.deleted_at).is_(None))
            .order_by(WorkoutGroup.position)
        )).all()
        items = (await session.exec(
            select(WorkoutItem)
            .where(col(WorkoutItem.workout_group_id).in_([g.id for g in groups]), col(WorkoutItem.deleted_at).is_(None))
            .order_by(WorkoutItem.position)
        )).all()
        exercises = {
            e.id: e for e in (await session.exec(
                select(Exercise).where(
                    col(Exercise.id).in_(list({i.exercise_id for i in items})), col(Exercise.deleted_at).is_(None)
                )
            )).all()
        }

        days_by_workout = _by(days, "workout_id")
        groups_by_day = _by(groups, "workout_day_id")
        items_by_group = _by(items, "workout_group_id")

        trees = []
        for workout in workouts:
            tree = _dump(workout)
            tree["workout_days"] = []
            for day in days_by_workout.get(workout.id, []):
                day_tree = _dump(day)
                day_tree["workout_groups"] = []
                for group in groups_by_day.get(day.id, []):
                    group_tree = _dump(group)
                    group_tree["workout_items"] = []
                    for item in items_by_group.get(group.id, []):
                        item_tree = _dump(item)
                        exercise = exercises.get(item.exercise_id)
                        item_tree["exercise"] = _dump(exercise) if exercise else None
                        group_tree["workout_items"].append(item_tree)
                    day_tree["workout_groups"].append(group_tree)
                tree["workout_days"].append(day_tree)
            trees.append(tree)
        return trees

    async def list_workouts(self, user_id: str) -> List[Dict[str, Any]]:
        async with self.session_factory() as session:
            workouts = (await session.exec(
                select(Workout)
                .where(Workout.user_id == user_id, col(Workout.deleted_at).is_(None))
                .order_by(col(Workout.updated_at).desc())
            )).all()
            return await self._workout_trees(session, list(workouts))

    async def get_workout(self, user_id: str, workout_id: str) -> Dict[str, Any]:
        async with self.session_factory() as session:
            workout = await self._load(session, Workout, workout_id, user_id)
            return (await self._workout_trees(session, [workout]))[0]

    async def create_workout(self, user_id: str, name: str, summary: Optional[str] = None) -> Dict[str, Any]:
        async with self.session_factory() as session:
            return await self._save(session, Workout(user_id=user_id, name=name, summary=summary))

    async def update_workout(self, user_id: str, workout_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        return await self._update(Workout, workout_id, user_id, changes)

    async def delete_workout(self, user_id: str, workout_id: str) -> None:
        await self._soft_delete(Workout, workout_id, user_id)

    # ------------------------------------------------------------------
    # Exercises
    # ------------------------------------------------------------------

    async def list_exercises(self, user_id: str) -> List[Dict[str, Any]]:
        async with self.session_factory() as session:
            rows = (await session.exec(
                select(Exercise)
                .where(Exercise.user_id == user_id, col(Exercise.deleted_at).is_(None))
                .order_by(Exercise.name)
            )).all()
            return [_dump(r) for r in rows]

    async def create_exercise(self, user_id: str, name: str, category: str, instructions: Optional[str] = None) -> Dict[str, Any]:
        async with self.session_factory() as session:
            exercise = Exercise(user_id=user_id, name=name, category=category, instructions=instructions)
            return await self._save(session, exercise)

    async def update_exercise(self, user_id: str, exercise_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        return await self._update(Exercise, exercise_id, user_id, changes)

    async def delete_exercise(self, user_id: str, exercise_id: str) -> None:
        await self._soft_delete(Exercise, exercise_id, user_id)

    # ------------------------------------------------------------------
    # Workout days, groups and items
    # ------------------------------------------------------------------

    async def create_workout_day(self, user_id: str, workout_id: str, dow: str, position: int = 1) -> Dict[str, Any]:
        async with self.session_factory() as session:
            await self._load(session, Workout, workout_id, user_id, parent=True)
            return await self._save(session, WorkoutDay(workout_id=workout_id, dow=dow, position=position))

    async def delete_workout_day(self, user_id: str, workout_day_id: str) -> None:
        await self._soft_delete(WorkoutDay, workout_day_id, user_id)

    async def create_workout_group(
        self,
        user_id: str,
        workout_day_id: str,
        name: str,
        group_type: str,
        rest_seconds: Optional[int] = None,
        position: int = 1,
    ) -> Dict[str, Any]:
        async with self.session_factory() as session:
            await self._load(session, WorkoutDay, workout_day_id, user_id, parent=True)
            group = WorkoutGroup(
                workout_day_id=workout_day_id,
                name=name,
                group_type=group_type,
                rest_seconds=rest_seconds,
                position=position,
            )
            return await self._save(session, group)

    async def update_workout_group(self, user_id: str, workout_group_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        return await self._update(WorkoutGroup, workout_group_id, user_id, changes)

    async def delete_workout_group(self, user_id: str, workout_group_id: str) -> None:
        await self._soft_delete(WorkoutGroup, workout_group_id, user_id)

    async def create_workout_item(self, user_id: str, workout_group_id: str, exercise_id: str, **fields) -> Dict[str, Any]:
        async with self.session_factory() as session:
            await self._load(session, WorkoutGroup, workout_group_id, user_id, parent=True)
            await self._load(session, Exercise, exercise_id, user_id, parent=True)
            item = WorkoutItem(workout_group_id=workout_group_id, exercise_id=exercise_id, **fields)
            return await self._save(session, item)

    async def update_workout_item(self, user_id: str, workout_item_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        return await self._update(WorkoutItem, workout_item_id, user_id, changes)

    async def delete_workout_item(self, user_id: str, workout_item_id: str) -> None:
        await self._soft_delete(WorkoutItem, workout_item_id, user_id)

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    async def list_plans(self, user_id: str, active_only: bool = False) -> List[Dict[str, Any]]:
        async with self.session_factory() as session:
            stmt = (
                select(Plan, Workout)
                .join(Workout, col(Plan.workout_id) == col(Workout.id))
                .where(Plan.user_id == user_id, col(Plan.deleted_at).is_(None))
                .order_by(col(Plan.start_date).desc())
            )
            if active_only:
                stmt = stmt.where(col(Plan.is_active).is_(True))
            plans = []
            for plan, workout in (await session.exec(stmt)).all():
                row = _dump(plan)
                row["workout"] = {"id": workout.id, "name": workout.name, "summary": workout.summary}
                plans.append(row)
            return plans

    async def create_plan(
        self,
        user_id: str,
        name: str,
        workout_id: str,
        duration_weeks: int,
        start_date: Optional[date] = None,
    ) -> Dict[str, Any]:
        async with self.session_factory() as session:
            await self._load(session, Workout, workout_id, user_id, parent=True)
            plan = Plan(
                user_id=user_id,
                name=name,
                workout_id=workout_id,
                duration_weeks=duration_weeks,
                start_date=start_date or date.today(),
            )
            return await self._save(session, plan)

    async def update_plan(self, user_id: str, plan_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        return await self._update(Plan, plan_id, user_id, changes)

    async def delete_plan(self, user_id: str, plan_id: str) -> None:
        await self._soft_delete(Plan, plan_id, user_id)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def _session_tree(self, session: AsyncSession, workout_session: WorkoutSession) -> Dict[str, Any]:
        groups = (await session.exec(
            select(SessionGroup)
            .where(SessionGroup.session_id == workout_session.id)
            .order_by(SessionGroup.position)
        )).all()
        items = (await session.exec(
            select(SessionItem)
            .where(col(SessionItem.session_group_id).in_([g.id for g in groups]))
            .order_by(SessionItem.position)
        )).all()
        sets = (await session.exec(
            select(CompletedSet)
            .where(col(CompletedSet.session_item_id).in_([i.id for i in items]))
            .order_by(CompletedSet.set_number)
        )).all()

        items_by_group = _by(items, "session_group_id")
        sets_by_item = _by(sets, "session_item_id")

        tree = _dump(workout_session)
        tree["session_groups"] = []
        for group in groups:
            group_tree = _dump(group)
            group_tree["session_items"] = []
            for item in items_by_group.get(group.id, []):
                item_tree = _dump(item)
                item_tree["completed_sets"] = [_dump(s) for s in sets_by_item.get(item.id, [])]
                group_tree["session_items"].append(item_tree)
            tree["session_groups"].append(group_tree)
        return tree

    async def list_sessions(self, user_id: str, limit: int = 50, finished_only: bool = False) -> List[Dict[str, Any]]:
        async with self.session_factory() as session:
            stmt = (
                select(WorkoutSession)
                .where(WorkoutSession.user_id == user_id)
                .order_by(col(WorkoutSession.started_at).desc())
                .limit(limit)
            )
            if finished_only:
                stmt = stmt.where(col(WorkoutSession.finished_at).is_not(None))
            return [_dump(r) for r in (await session.exec(stmt)).all()]

    async def get_session(self, user_id: str, session_id: str) -> Dict[str, Any]:
        async with self.session_factory() as session:
            workout_session = await self._load(session, WorkoutSession, session_id, user_id)
            return await self._session_tree(session, workout_session)

    async def create_session(
        self,
        user_id: str,
        workout_id: str,
        title: str,
        plan_id: Optional[str] = None,
        day_dow: Optional[str] = None,
    ) -> Dict[str, Any]:
        async with self.session_factory() as session:
            await self._load(session, Workout, workout_id, user_id, parent=True)
            if plan_id:
                await self._load(session, Plan, plan_id, user_id, parent=True)
            workout_session = WorkoutSession(
                user_id=user_id,
                workout_id=workout_id,
                plan_id=plan_id,
                title=title,
                day_dow=day_dow,
                started_at=utcnow(),
            )
            return await self._save(session, workout_session)

    async def _volume(self, session: AsyncSession, session_id: str) -> float:
        stmt = (
            select(func.coalesce(func.sum(CompletedSet.reps * CompletedSet.weight), 0))
            .join(SessionItem, col(CompletedSet.session_item_id) == col(SessionItem.id))
            .join(SessionGroup, col(SessionItem.session_group_id) == col(SessionGroup.id))
            .where(SessionGroup.session_id == session_id)
        )
        return float((await session.exec(stmt)).one())

    async def finish_session(self, user_id: str, session_id: str) -> Dict[str, Any]:
        async with self.session_factory() as session:
            workout_session = await self._load(session, WorkoutSession, session_id, user_id)
            workout_session.finished_at = utcnow()
            workout_session.total_volume = await self._volume(session, session_id)
            workout_session.updated_at = workout_session.finished_at
            return await self._save(session, workout_session)

    async def delete_session(self, user_id: str, session_id: str) -> None:
        async with self.session_factory() as session:
            await self._load(session, WorkoutSession, session_id, user_id)
            group_ids = select(SessionGroup.id).where(SessionGroup.session_id == session_id)
            item_ids = select(SessionItem.id).where(col(SessionItem.session_group_id).in_(group_ids))
            await session.exec(delete(CompletedSet).where(col(CompletedSet.session_item_id).in_(item_ids)))
            await session.exec(delete(SessionItem).where(col(SessionItem.session_group_id).in_(group_ids)))
            await session.exec(delete(SessionGroup).where(SessionGroup.session_id == session_id))
            await session.exec(delete(WorkoutSession).where(WorkoutSession.id == session_id))
            await session.commit()

    async def create_session_group(
        self,
        user_id: str,
        session_id: str,
        name: str,
        group_type: str,
        rest_seconds: Optional[int] = None,
        position: int = 1,
    ) -> Dict[str, Any]:
        async with self.session_factory() as session:
            await self._load(session, WorkoutSession, session_id, user_id, parent=True)
            group = SessionGroup(
                session_id=session_id,
                name=name,
                group_type=group_type,
                rest_seconds=rest_seconds,
                position=position,
            )
            return await self._save(session, group)

    async def create_session_item(self, user_id: str, session_group_id: str, exercise_name: str, **fields) -> Dict[str, Any]:
        async with self.session_factory() as session:
            await self._load(session, SessionGroup, session_group_id, user_id, parent=True)
            item = SessionItem(session_group_id=session_group_id, exercise_name=exercise_name, **fields)
            return await self._save(session, item)

    # ------------------------------------------------------------------
    # Completed sets
    # ------------------------------------------------------------------

    async def log_set(self, user_id: str, session_item_id: str, set_number: int, weight: float, reps: int) -> Dict[str, Any]:
        async with self.session_factory() as session:
            await self._load(session, SessionItem, session_item_id, user_id, parent=True)
            completed = CompletedSet(session_item_id=session_item_id, set_number=set_number, weight=weight, reps=reps)
            return await self._save(session, completed)

    async def update_set(self, user_id: str, set_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        return await self._update(CompletedSet, set_id, user_id, changes)

    async def delete_set(self, user_id: str, set_id: str) -> None:
        async with self.session_factory() as session:
            completed = await self._load(session, CompletedSet, set_id, user_id)
            await session.delete(completed)
            await session.commit()

    # ------------------------------------------------------------------
    # User settings
    # ------------------------------------------------------------------

    async def get_user_settings(self, user_id: str) -> Dict[str, Any]:
        async with self.session_factory() as session:
            row = (await session.exec(select(UserSettings).where(UserSettings.user_id == user_id))).first()
            if row is None:
                return {"user_id": user_id, "system_instructions": None}
            return _dump(row)

    async def update_user_settings(self, user_id: str, system_instructions: Optional[str]) -> Dict[str, Any]:
        async with self.session_factory() as session:
            row = (await session.exec(select(UserSettings).where(UserSettings.user_id == user_id))).first()
            if row is None:
                row = UserSettings(user_id=user_id)
            row.system_instructions = system_instructions
            row.updated_at = utcnow()
            return await self._save(session, row)

    # ------------------------------------------------------------------
    # Cascades
    # ------------------------------------------------------------------

    async def _find_or_create_exercise(
        self,
        session: AsyncSession,
        user_id: str,
        cache: Dict[str, Exercise],
        name: str,
        category: Optional[str],
        instructions: Optional[str],
    ) -> Exercise:
        key = name.strip().lower()
        if key in cache:
            return cache[key]
        exercise = (await session.exec(
            select(Exercise).where(
                Exercise.user_id == user_id,
                func.lower(Exercise.name) == key,
                col(Exercise.deleted_at).is_(None),
            )
        )).first()
        if exercise is None:
            exercise = Exercise(user_id=user_id, name=name.strip(), category=category or "strength", instructions=instructions)
            session.add(exercise)
            await session.flush()
            logger.info(f"Created exercise '{exercise.name}' during import", extra={"user_id": user_id})
        cache[key] = exercise
        return exercise

    async def import_workout(self, user_id: str, template: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a workout with all of its days, groups and items in one
        transaction. Exercises are matched by name among the user's
        exercises and created when missing. Nothing is kept if any insert fails.
        """
        async with self.session_factory() as session:
            workout = Workout(user_id=user_id, name=template["name"], summary=template.get("summary"))
            session.add(workout)
            await session.flush()

            exercises: Dict[str, Exercise] = {}
            item_count = 0
            for day_data in template.get("workout_days") or []:
                day = WorkoutDay(workout_id=workout.id, dow=day_data["dow"], position=day_data.get("position") or 1)
                session.add(day)
                await session.flush()

                for group_data in day_data.get("workout_groups") or []:
                    group = WorkoutGroup(
                        workout_day_id=day.id,
                        name=group_data["name"],
                        group_type=group_data["group_type"],
                        rest_seconds=group_data.get("rest_seconds"),
                        position=group_data.get("position") or 1,
                    )
                    session.add(group)
                    await session.flush()

                    for item_data in group_data.get("workout_items") or []:
                        exercise = await self._find_or_create_exercise(
                            session,
                            user_id,
                            exercises,
                            item_data["exercise_name"],
                            item_data.get("category"),
                            item_data.get("instructions"),
                        )
                        session.add(WorkoutItem(
                            workout_group_id=group.id,
                            exercise_id=exercise.id,
                            position=item_data.get("position") or 1,
                            target_sets=item_data.get("target_sets"),
                            target_reps=item_data.get("target_reps"),
                            target_weight=item_data.get("target_weight"),
                            rest_seconds_override=item_data.get("rest_seconds_override"),
                            notes=item_data.get("notes"),
                        ))
                        item_count += 1
                    await session.flush()

            await session.commit()
            logger.info(
                f"Imported workout '{workout.name}' with {item_count} items",
                extra={"user_id": user_id, "workout_id": workout.id},
            )
            return (await self._workout_trees(session, [workout]))[0]

    async def log_session(self, user_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Record a finished session with its groups, exercises and sets in one transaction."""
        async with self.session_factory() as session:
            workout_id = payload.get("workout_id")
            if workout_id:
                await self._load(session, Workout, workout_id, user_id, parent=True)

            started_at: datetime = payload["started_at"]
            workout_session = WorkoutSession(
                user_id=user_id,
                workout_id=workout_id,
                title=payload["title"],
                started_at=started_at,
                finished_at=payload.get("finished_at") or utcnow(),
            )
            session.add(workout_session)
            await session.flush()

            total_volume = 0.0
            for group_data in payload.get("groups") or []:
                group = SessionGroup(
                    session_id=workout_session.id,
                    name=group_data["name"],
                    group_type=group_data["group_type"],
                    position=group_data.get("position") or 1,
                )
                session.add(group)
                await session.flush()

                for exercise_data in group_data.get("exercises") or []:
                    item = SessionItem(
                        session_group_id=group.id,
                        exercise_name=exercise_data["exercise_name"],
                        target_sets=exercise_data.get("target_sets"),
                        position=exercise_data.get("position") or 1,
                    )
                    session.add(item)
                    await session.flush()

                    for set_data in exercise_data.get("sets") or []:
                        session.add(CompletedSet(
                            session_item_id=item.id,
                            set_number=set_data["set_number"],
                            reps=set_data["reps"],
                            weight=set_data["weight"],
                        ))
                        total_volume += set_data["reps"] * set_data["weight"]
                    await session.flush()

            workout_session.total_volume = total_volume
            session.add(workout_session)
            await session.commit()
            return await self._session_tree(session, workout_session)

    # ------------------------------------------------------------------
    # Recommendations
    # ------------------------------------------------------------------

    async def training_summary(self, user_id: str, session_limit: int = 20) -> Dict[str, Any]:
        async with self.session_factory() as session:
            sessions = (await session.exec(
                select(WorkoutSession)
                .where(WorkoutSession.user_id == user_id)
                .order_by(col(WorkoutSession.started_at).desc())
                .limit(session_limit)
            )).all()
            workouts = (await session.exec(
                select(Workout).where(Workout.user_id == user_id, col(Workout.deleted_at).is_(None))
            )).all()
            plans = (await session.exec(
                select(Plan).where(Plan.user_id == user_id, col(Plan.deleted_at).is_(None))
            )).all()
            return {
                "sessions": [
                    {
                        "id": s.id,
                        "title": s.title,
                        "started_at": s.started_at.isoformat(),
                        "finished_at": s.finished_at.isoformat() if s.finished_at else None,
                        "total_volume": s.total_volume,
                    }
                    for s in sessions
                ],
                "workouts": [{"id": w.id, "name": w.name, "summary": w.summary} for w in workouts],
                "plans": [
                    {
                        "id": p.id,
                        "name": p.name,
                        "is_active": p.is_active,
                        "start_date": p.start_date.isoformat(),
                        "duration_weeks": p.duration_weeks,
                    }
                    for p in plans
                ],
            }
