import asyncio
import json

import httpx
import openai
import pytest

from agent.models import ConversationMessage
from agent.prompts import format_system_prompt
from agent.service import TrainerAgent, parse_api_error
from core.errors import MaxTurnsExceededError, UpstreamError, UpstreamTimeoutError
from fakes import STALL, USER_ID, chunk, completion, fake_client, text_chunks, tool_call_chunks

MISSING_ID = "00000000-0000-4000-8000-000000000000"
HELLO = [ConversationMessage(role="user", content="Hi coach")]


def make_agent(client, executor, registry, **kwargs):
    return TrainerAgent(client=client, executor=executor, registry=registry, user_id=USER_ID, **kwargs)


def status_error(status, body):
    request = httpx.Request("POST", "https://gateway.test/v1/chat/completions")
    response = httpx.Response(status, request=request)
    return openai.APIStatusError("upstream failed", response=response, body=body)


@pytest.mark.asyncio
async def test_plain_reply_needs_one_upstream_call(executor, registry):
    client = fake_client(completion(content="Drink water and sleep well."))
    agent = make_agent(client, executor, registry)

    result = await agent.complete(HELLO)

    assert result.content == "Drink water and sleep well."
    assert result.upstream_calls == 1
    assert len(client.chat.completions.calls) == 1
    request = client.chat.completions.calls[0]
    assert request["tool_choice"] == "auto"
    assert request["messages"][0]["role"] == "system"
    assert request["messages"][1] == {"role": "user", "content": "Hi coach"}
    assert len(request["tools"]) == len(registry)


@pytest.mark.asyncio
async def test_leg_day_round_trip(executor, registry, store):
    client = fake_client(
        completion(tool_calls=[("call_1", "manage_workouts", {"action": "create", "name": "Leg Day"})]),
        completion(content="Leg Day is ready."),
    )
    agent = make_agent(client, executor, registry)

    result = await agent.complete([ConversationMessage(role="user", content="Create a workout called Leg Day")])

    assert result.upstream_calls == 2
    assert result.content == "Leg Day is ready."
    assistant, tool_message, final = result.messages
    assert assistant.tool_calls[0].id == "call_1"
    assert tool_message.tool_call_id == "call_1"
    payload = json.loads(tool_message.content)
    assert payload["success"] is True
    assert payload["data"]["name"] == "Leg Day"
    assert payload["data"]["id"]

    workouts = await store.list_workouts(USER_ID)
    assert [w["id"] for w in workouts] == [payload["data"]["id"]]

    second_request = client.chat.completions.calls[1]["messages"]
    assert second_request[-1]["role"] == "tool"
    assert second_request[-1]["tool_call_id"] == "call_1"
    assert second_request[-2]["tool_calls"][0]["function"]["name"] == "manage_workouts"


@pytest.mark.asyncio
async def test_every_tool_call_gets_one_tool_message(executor, registry):
    calls = [
        ("a", "manage_workouts", {"action": "list"}),
        ("b", "manage_workouts", {"action": "delete", "workout_id": "not-a-uuid"}),
        ("c", "unknown_tool", {}),
        ("d", "manage_exercises", {"action": "list"}),
    ]
    client = fake_client(completion(tool_calls=calls), completion(content="Done."))
    agent = make_agent(client, executor, registry)

    result = await agent.complete(HELLO)

    tool_messages = [m for m in result.messages if m.role == "tool"]
    assert [m.tool_call_id for m in tool_messages] == ["a", "b", "c", "d"]
    error_types = [json.loads(m.content).get("error_type") for m in tool_messages]
    assert error_types == [None, "validation_error", "unknown_tool", None]


@pytest.mark.asyncio
async def test_not_found_does_not_block_siblings(executor, registry, store):
    calls = [
        ("a", "manage_workouts", {"action": "delete", "workout_id": MISSING_ID}),
        ("b", "manage_workouts", {"action": "create", "name": "Push"}),
    ]
    client = fake_client(completion(tool_calls=calls), completion(content="Created Push."))
    agent = make_agent(client, executor, registry)

    result = await agent.complete(HELLO)

    first, second = [json.loads(m.content) for m in result.messages if m.role == "tool"]
    assert first["error_type"] == "not_found"
    assert second["success"] is True
    assert len(await store.list_workouts(USER_ID)) == 1


@pytest.mark.asyncio
async def test_turn_budget(executor, registry):
    looping = [completion(tool_calls=[(f"c{i}", "manage_workouts", {"action": "list"})]) for i in range(3)]
    client = fake_client(*looping)
    agent = make_agent(client, executor, registry, max_turns=3)

    with pytest.raises(MaxTurnsExceededError) as exc:
        await agent.complete(HELLO)
    assert exc.value.error_type == "max_turns_exceeded"
    assert len(client.chat.completions.calls) == 3


@pytest.mark.asyncio
async def test_upstream_error_fails_the_turn(executor, registry):
    client = fake_client(status_error(429, {"message": "Rate limit reached", "type": "rate_limit"}))
    agent = make_agent(client, executor, registry)

    with pytest.raises(UpstreamError) as exc:
        await agent.complete(HELLO)
    assert exc.value.status == 429
    assert "Rate limit reached" in exc.value.message


@pytest.mark.asyncio
async def test_upstream_timeout(executor, registry):
    async def hang():
        await asyncio.sleep(1)

    client = fake_client(hang)
    agent = make_agent(client, executor, registry, timeout=0.05)

    with pytest.raises(UpstreamTimeoutError) as exc:
        await agent.complete(HELLO)
    assert exc.value.message == "Request timeout: AI service took too long to respond"
    assert exc.value.status_code == 504


@pytest.mark.asyncio
async def test_empty_choices_is_an_upstream_error(executor, registry):
    response = completion(content="ignored")
    response.choices = []
    agent = make_agent(fake_client(response), executor, registry)

    with pytest.raises(UpstreamError):
        await agent.complete(HELLO)


def test_parse_api_error():
    assert parse_api_error(status_error(400, {"message": "bad model"})) == "bad model"
    assert parse_api_error(status_error(400, "quota exceeded")) == "quota exceeded"
    assert parse_api_error(status_error(400, {"error": "nope"})) == "nope"
    assert parse_api_error(status_error(503, None)) == "API error: 503 Service Unavailable"


@pytest.mark.asyncio
async def test_stream_text_matches_complete(executor, registry):
    text = "Rest 90 seconds between heavy sets."
    streamed = make_agent(fake_client(text_chunks(text)), executor, registry)
    plain = make_agent(fake_client(completion(content=text)), executor, registry)

    chunks = [c async for c in streamed.stream(HELLO)]
    result = await plain.complete(HELLO)

    joined = "".join(c["choices"][0]["delta"].get("content", "") for c in chunks)
    assert joined == result.content
    assert chunks[-1]["choices"][0]["finish_reason"] == "stop"


@pytest.mark.asyncio
async def test_stream_runs_tools_between_rounds(executor, registry, store):
    client = fake_client(
        tool_call_chunks("call_1", "manage_workouts", {"action": "create", "name": "Leg Day"})
        + [chunk(finish_reason="tool_calls")],
        text_chunks("Leg Day created."),
    )
    agent = make_agent(client, executor, registry)

    chunks = [c async for c in agent.stream(HELLO)]

    assert "".join(c["choices"][0]["delta"].get("content", "") for c in chunks) == "Leg Day created."
    assert len(client.chat.completions.calls) == 2
    assert client.chat.completions.calls[0]["stream"] is True
    tool_message = client.chat.completions.calls[1]["messages"][-1]
    assert tool_message["tool_call_id"] == "call_1"
    assert json.loads(tool_message["content"])["data"]["name"] == "Leg Day"
    assert [w["name"] for w in await store.list_workouts(USER_ID)] == ["Leg Day"]
    assert all(s.closed for s in client.chat.completions.streams)


@pytest.mark.asyncio
async def test_stream_skips_text_sent_with_tool_calls(executor, registry):
    list_call = ("call_1", "manage_workouts", {"action": "list"})
    streamed = make_agent(fake_client(
        [chunk(content="Let me check. ")] + tool_call_chunks(*list_call) + [chunk(finish_reason="tool_calls")],
        text_chunks("You have none."),
    ), executor, registry)
    plain = make_agent(fake_client(
        completion(content="Let me check. ", tool_calls=[list_call]),
        completion(content="You have none."),
    ), executor, registry)

    chunks = [c async for c in streamed.stream(HELLO)]
    result = await plain.complete(HELLO)

    joined = "".join(c["choices"][0]["delta"].get("content", "") for c in chunks)
    assert joined == result.content == "You have none."
    second_call = streamed.client.chat.completions.calls[1]["messages"]
    assert second_call[-2]["content"] == "Let me check. "


@pytest.mark.asyncio
async def test_stream_closes_upstream_on_chunk_timeout(executor, registry):
    client = fake_client([chunk(content="Rest "), STALL, chunk(content="more.")])
    agent = make_agent(client, executor, registry, timeout=0.05)

    with pytest.raises(UpstreamTimeoutError):
        [c async for c in agent.stream(HELLO)]

    assert client.chat.completions.streams[0].closed


def test_custom_instructions_are_appended():
    assert format_system_prompt(None).startswith("You are an expert personal fitness trainer")
    prompt = format_system_prompt("  Use kilograms.  ")
    assert prompt.endswith("\n\nCustom Instructions: Use kilograms.")
