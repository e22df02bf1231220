import json
from typing import Any, AsyncGenerator, Dict, List, Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field, field_validator

from agent.models import ConversationMessage
from agent.prompts import format_system_prompt
from agent.service import TrainerAgent
from backend.core.auth import get_user_id
from core.errors import TrainerError
from core.logger import logger
from core.ratelimit import limiter

router = APIRouter()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


class TrainerRequest(BaseModel):
    messages: List[ConversationMessage] = Field(min_length=1)

    @field_validator("messages")
    @classmethod
    def reject_system_messages(cls, messages: List[ConversationMessage]) -> List[ConversationMessage]:
        if any(m.role == "system" for m in messages):
            raise ValueError("system messages are not accepted, the server provides the system prompt")
        return messages


async def get_trainer(request: Request, user_id: str = Depends(get_user_id)) -> TrainerAgent:
    limiter.acquire(user_id)

    state = request.app.state
    if getattr(state, "client", None) is None:
        raise TrainerError("API_KEY is not configured")

    user_settings = await state.store.get_user_settings(user_id)
    return TrainerAgent(
        client=state.client,
        executor=state.executor,
        registry=state.registry,
        user_id=user_id,
        system_prompt=format_system_prompt(user_settings.get("system_instructions")),
    )


def format_sse(data: Any) -> str:
    payload = data if isinstance(data, str) else json.dumps(data, default=str)
    return f"data: {payload}\n\n"


async def sse_events(
    first: Optional[Dict[str, Any]],
    events: AsyncGenerator[Dict[str, Any], None],
    user_id: str,
) -> AsyncGenerator[str, None]:
    try:
        if first is not None:
            yield format_sse(first)
            async for chunk in events:
                yield format_sse(chunk)
    except TrainerError as e:
        logger.warning(f"Stream ended with {e.error_type}: {e.message}", extra={"user_id": user_id})
        yield format_sse({"error": e.message, "error_type": e.error_type})
    except Exception as e:
        logger.error(f"Stream failed: {e}", extra={"user_id": user_id}, exc_info=True)
        yield format_sse({"error": "Internal server error", "error_type": "unknown_error"})
    yield format_sse("[DONE]")


@router.options("/trainer")
@router.options("/trainer/stream")
async def preflight():
    return Response(status_code=200, headers=CORS_HEADERS)


@router.post("/trainer")
async def trainer(body: TrainerRequest, agent: TrainerAgent = Depends(get_trainer)):
    result = await agent.complete(body.messages)
    logger.info(
        f"Turn finished after {result.upstream_calls} upstream call(s)",
        extra={"user_id": agent.user_id},
    )
    return JSONResponse(result.response.model_dump(mode="json", exclude_none=True))


@router.post("/trainer/stream")
async def trainer_stream(body: TrainerRequest, agent: TrainerAgent = Depends(get_trainer)):
    events = agent.stream(body.messages)
    # Pull the first event before answering so an upstream failure still gets its HTTP status.
    try:
        first = await events.__anext__()
    except StopAsyncIteration:
        first = None

    return StreamingResponse(
        sse_events(first, events, agent.user_id),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )
