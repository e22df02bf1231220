import pytest

from agent import arguments as args
from agent.tools import ToolArgumentError, build_registry

WORKOUT_ID = "3f2b8c1e-9d4a-4b7e-8f10-2a6c5d9e7b31"


def test_registry_exposes_every_tool():
    registry = build_registry()

    assert registry.names() == [
        "manage_workouts",
        "manage_exercises",
        "manage_workout_days",
        "manage_workout_groups",
        "manage_workout_items",
        "manage_plans",
        "manage_sessions",
        "manage_session_groups",
        "manage_session_items",
        "manage_sets",
        "manage_user_settings",
        "import_workout",
        "log_session",
        "get_training_summary",
    ]
    for definition in registry.definitions():
        assert definition["type"] == "function"
        assert definition["function"]["description"]
        assert definition["function"]["parameters"]["type"] == "object"


def test_registry_is_immutable():
    registry = build_registry()

    with pytest.raises(TypeError):
        registry._tools["rogue"] = None
    assert registry.get("rogue") is None


def test_manage_tool_schema_lists_actions():
    tool = build_registry().get("manage_workouts")

    params = tool.parameters
    assert params["required"] == ["action"]
    assert params["properties"]["action"]["enum"] == ["list", "get", "create", "update", "delete"]
    assert "workout_id" in params["properties"]
    assert "name" in params["properties"]


def test_parse_selects_model_by_action():
    tool = build_registry().get("manage_workouts")

    request = tool.parse({"action": "create", "name": "  Leg Day  "})

    assert isinstance(request, args.CreateWorkout)
    assert request.name == "Leg Day"


def test_parse_rejects_unknown_action():
    tool = build_registry().get("manage_workouts")

    with pytest.raises(ToolArgumentError) as exc:
        tool.parse({"action": "explode"})
    assert exc.value.errors == ["action: must be one of list, get, create, update, delete"]


@pytest.mark.parametrize("arguments, field", [
    ({"action": "get", "workout_id": "not-a-uuid"}, "workout_id"),
    ({"action": "create", "name": "   "}, "name"),
    ({"action": "create"}, "name"),
])
def test_parse_reports_field_errors(arguments, field):
    tool = build_registry().get("manage_workouts")

    with pytest.raises(ToolArgumentError) as exc:
        tool.parse(arguments)
    assert exc.value.errors[0].startswith(f"{field}: ")


def test_uuid_is_case_insensitive():
    request = args.GetWorkout(workout_id=WORKOUT_ID.upper())

    assert request.workout_id == WORKOUT_ID


def test_numbers_must_not_be_negative():
    tool = build_registry().get("manage_sets")

    with pytest.raises(ToolArgumentError) as exc:
        tool.parse({"action": "log", "session_item_id": WORKOUT_ID, "set_number": 1, "weight": -10, "reps": 5})
    assert exc.value.errors[0].startswith("weight: ")


def test_enums_are_closed():
    tool = build_registry().get("manage_exercises")

    with pytest.raises(ToolArgumentError):
        tool.parse({"action": "create", "name": "Squat", "category": "powerlifting"})
    with pytest.raises(ToolArgumentError):
        build_registry().get("manage_workout_days").parse({"action": "create", "workout_id": WORKOUT_ID, "dow": "Funday"})


def test_update_needs_a_change():
    tool = build_registry().get("manage_workouts")

    with pytest.raises(ToolArgumentError) as exc:
        tool.parse({"action": "update", "workout_id": WORKOUT_ID})
    assert "at least one field to update is required" in exc.value.errors[0]


def test_update_changes_skip_missing_fields():
    request = args.UpdateWorkoutItem(workout_item_id=WORKOUT_ID, target_reps=8)

    assert request.changes() == {"target_reps": 8}


def test_session_limit_is_bounded():
    tool = build_registry().get("manage_sessions")

    assert tool.parse({"action": "list"}).limit == 50
    with pytest.raises(ToolArgumentError):
        tool.parse({"action": "list", "limit": 500})


def test_single_purpose_tool_has_no_action():
    tool = build_registry().get("get_training_summary")

    assert "action" not in tool.parameters.get("properties", {})
    assert isinstance(tool.parse({}), args.GetTrainingSummary)


def test_import_workout_validates_nested_items():
    tool = build_registry().get("import_workout")
    template = {
        "name": "Lower",
        "workout_days": [{
            "dow": "Mon",
            "workout_groups": [{"name": "Main", "group_type": "single", "workout_items": [{"exercise_name": ""}]}],
        }],
    }

    with pytest.raises(ToolArgumentError) as exc:
        tool.parse(template)
    assert exc.value.errors[0].startswith("workout_days.0.workout_groups.0.workout_items.0.exercise_name: ")


def test_log_session_rejects_finish_before_start():
    tool = build_registry().get("log_session")

    with pytest.raises(ToolArgumentError):
        tool.parse({
            "title": "Pull",
            "started_at": "2024-05-02T18:00:00Z",
            "finished_at": "2024-05-02T17:00:00",
            "groups": [{"name": "Main", "exercises": []}],
        })
