from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Type

from pydantic import ValidationError

from agent import arguments as args
from agent.arguments import ToolArgs
from agent.models import ToolDefinition


class ToolArgumentError(Exception):
    """The model sent arguments that do not fit the tool."""

    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


def format_validation_errors(exc: ValidationError) -> List[str]:
    errors = []
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"]) or "arguments"
        errors.append(f"{field}: {err['msg']}")
    return errors


class Tool:
    """
    A tool the model can call.

    Tools with several actions take an ``action`` argument that selects the
    request model. Single-purpose tools have exactly one model and no
    ``action`` argument.
    """

    def __init__(
        self,
        name: str,
        description: str,
        actions: Optional[Mapping[str, Type[ToolArgs]]] = None,
        model: Optional[Type[ToolArgs]] = None,
    ):
        if (actions is None) == (model is None):
            raise ValueError(f"Tool {name} needs either actions or a model")
        self.name = name
        self.description = description
        self.actions = MappingProxyType(dict(actions)) if actions else None
        self.model = model

    @property
    def parameters(self) -> Dict[str, Any]:
        if self.model is not None:
            schema = self.model.model_json_schema()
            schema.pop("title", None)
            return schema

        properties: Dict[str, Any] = {
            "action": {"type": "string", "enum": list(self.actions)},
        }
        defs: Dict[str, Any] = {}
        for model in self.actions.values():
            schema = model.model_json_schema()
            for field, spec in schema.get("properties", {}).items():
                properties.setdefault(field, spec)
            defs.update(schema.get("$defs", {}))

        parameters = {"type": "object", "properties": properties, "required": ["action"]}
        if defs:
            parameters["$defs"] = defs
        return parameters

    def definition(self) -> ToolDefinition:
        return ToolDefinition(name=self.name, description=self.description, parameters=self.parameters)

    def parse(self, arguments: Dict[str, Any]) -> ToolArgs:
        model = self.model
        if model is None:
            action = arguments.get("action")
            model = self.actions.get(action) if isinstance(action, str) else None
            if model is None:
                raise ToolArgumentError([f"action: must be one of {', '.join(self.actions)}"])
            arguments = {k: v for k, v in arguments.items() if k != "action"}
        try:
            return model.model_validate(arguments)
        except ValidationError as e:
            raise ToolArgumentError(format_validation_errors(e)) from e


class ToolRegistry:
    """Immutable name -> Tool lookup, built once at startup."""

    def __init__(self, tools: List[Tool]):
        self._tools = MappingProxyType({tool.name: tool for tool in tools})
        self._definitions = tuple(tool.definition() for tool in tools)

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools)

    def definitions(self) -> List[Dict[str, Any]]:
        return [d.to_openai() for d in self._definitions]

    def __len__(self):
        return len(self._tools)


def build_registry() -> ToolRegistry:
    return ToolRegistry([
        Tool(
            "manage_workouts",
            "List, get, create, update or delete the user's workout templates. "
            "list and get return the full tree of days, groups and exercises.",
            actions={
                "list": args.ListWorkouts,
                "get": args.GetWorkout,
                "create": args.CreateWorkout,
                "update": args.UpdateWorkout,
                "delete": args.DeleteWorkout,
            },
        ),
        Tool(
            "manage_exercises",
            "List, create, update or delete the user's exercise library.",
            actions={
                "list": args.ListExercises,
                "create": args.CreateExercise,
                "update": args.UpdateExercise,
                "delete": args.DeleteExercise,
            },
        ),
        Tool(
            "manage_workout_days",
            "Add a training day (Mon..Sun) to a workout, or remove one.",
            actions={
                "create": args.CreateWorkoutDay,
                "delete": args.DeleteWorkoutDay,
            },
        ),
        Tool(
            "manage_workout_groups",
            "Create, update or delete an exercise group (single, superset, triset, circuit) on a workout day.",
            actions={
                "create": args.CreateWorkoutGroup,
                "update": args.UpdateWorkoutGroup,
                "delete": args.DeleteWorkoutGroup,
            },
        ),
        Tool(
            "manage_workout_items",
            "Add an exercise with its targets to a workout group, change the targets, or remove it.",
            actions={
                "create": args.CreateWorkoutItem,
                "update": args.UpdateWorkoutItem,
                "delete": args.DeleteWorkoutItem,
            },
        ),
        Tool(
            "manage_plans",
            "List, create, update or delete training plans that schedule a workout over several weeks.",
            actions={
                "list": args.ListPlans,
                "create": args.CreatePlan,
                "update": args.UpdatePlan,
                "delete": args.DeletePlan,
            },
        ),
        Tool(
            "manage_sessions",
            "List past sessions, get one with its sets, start a new session, finish it, or delete it.",
            actions={
                "list": args.ListSessions,
                "get": args.GetSession,
                "create": args.CreateSession,
                "finish": args.FinishSession,
                "delete": args.DeleteSession,
            },
        ),
        Tool(
            "manage_session_groups",
            "Add an exercise group to a running session.",
            actions={"create": args.CreateSessionGroup},
        ),
        Tool(
            "manage_session_items",
            "Add an exercise to a group of a running session.",
            actions={"create": args.CreateSessionItem},
        ),
        Tool(
            "manage_sets",
            "Log a completed set (reps and weight) for a session exercise, correct it, or delete it.",
            actions={
                "log": args.LogSet,
                "update": args.UpdateSet,
                "delete": args.DeleteSet,
            },
        ),
        Tool(
            "manage_user_settings",
            "Read or change the user's custom instructions for the trainer.",
            actions={
                "get": args.GetUserSettings,
                "update": args.UpdateUserSettings,
            },
        ),
        Tool(
            "import_workout",
            "Create a complete workout in one step from days, groups and exercises. "
            "Exercises are matched by name and created when missing.",
            model=args.ImportWorkout,
        ),
        Tool(
            "log_session",
            "Record a finished session with all groups, exercises and completed sets in one step.",
            model=args.LogSession,
        ),
        Tool(
            "get_training_summary",
            "Get recent sessions, workouts and plans to base recommendations on.",
            model=args.GetTrainingSummary,
        ),
    ])
