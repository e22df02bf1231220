import asyncio
from typing import List, AsyncGenerator, Any, Dict, Optional

import openai

from agent.executor import ToolExecutor
from agent.models import ConversationMessage, ToolCall, ToolCallFunction, TurnResult
from agent.prompts import format_system_prompt
from agent.tools import ToolRegistry
from core.config import settings
from core.errors import MaxTurnsExceededError, UpstreamError, UpstreamTimeoutError
from core.logger import logger

TIMEOUT_MESSAGE = "Request timeout: AI service took too long to respond"


def parse_api_error(exc: openai.APIStatusError) -> str:
    """Pull a readable message out of an upstream error body."""
    body = exc.body
    if isinstance(body, str) and body:
        return body
    if isinstance(body, dict):
        if isinstance(body.get("message"), str):
            return body["message"]
        error = body.get("error")
        if isinstance(error, str):
            return error
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
    reason = exc.response.reason_phrase if exc.response is not None else ""
    return f"API error: {exc.status_code} {reason}".strip()


class TrainerAgent:
    """
    Runs one user turn against the chat completion service.

    The model is called with the conversation and the tool definitions;
    every tool call it asks for is executed and answered with a tool
    message, and the model is called again, until it replies with plain
    text or ``max_turns`` rounds have been used.
    """

    def __init__(
        self,
        client: openai.AsyncOpenAI,
        executor: ToolExecutor,
        registry: ToolRegistry,
        user_id: str,
        system_prompt: Optional[str] = None,
        model: str = settings.MODEL_NAME,
        max_turns: int = settings.MAX_STEPS,
        timeout: float = settings.LLM_TIMEOUT_SECONDS,
    ):
        self.client = client
        self.executor = executor
        self.registry = registry
        self.user_id = user_id
        self.system_prompt = system_prompt or format_system_prompt()
        self.model = model
        self.max_turns = max_turns
        self.timeout = timeout

    def _payload(self, messages: List[ConversationMessage], stream: bool = False) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": "system", "content": self.system_prompt}] + [m.to_openai() for m in messages],
            "tools": self.registry.definitions(),
            "tool_choice": "auto",
            "stream": stream,
        }

    async def _upstream(self, awaitable):
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except (asyncio.TimeoutError, openai.APITimeoutError) as e:
            logger.error(TIMEOUT_MESSAGE, extra={"user_id": self.user_id})
            raise UpstreamTimeoutError(TIMEOUT_MESSAGE) from e
        except openai.APIStatusError as e:
            message = parse_api_error(e)
            logger.error(f"AI gateway error: {e.status_code} {message}", extra={"user_id": self.user_id})
            raise UpstreamError(f"AI service error ({e.status_code}): {message}", status=e.status_code) from e
        except openai.APIConnectionError as e:
            logger.error(f"AI gateway unreachable: {e}", extra={"user_id": self.user_id})
            raise UpstreamError(f"Could not reach AI service: {e}") from e

    async def _run_tools(self, tool_calls: List[ToolCall], turn: int) -> List[ConversationMessage]:
        logger.info(f"Executing {len(tool_calls)} tool call(s)", extra={"user_id": self.user_id, "turn": turn})
        results = await self.executor.execute_batch(tool_calls, self.user_id)
        return [self.executor.to_tool_message(call, result) for call, result in zip(tool_calls, results)]

    async def complete(self, history: List[ConversationMessage]) -> TurnResult:
        messages = list(history)
        appended: List[ConversationMessage] = []

        for turn in range(1, self.max_turns + 1):
            logger.info(f"Calling LLM with {len(messages)} messages", extra={"user_id": self.user_id, "turn": turn})
            response = await self._upstream(self.client.chat.completions.create(**self._payload(messages)))

            if not getattr(response, "choices", None):
                logger.error("Invalid AI response structure", extra={"user_id": self.user_id, "turn": turn})
                raise UpstreamError("AI service returned an invalid response structure")
            message = response.choices[0].message
            if message is None:
                raise UpstreamError("AI service response is missing a message")

            tool_calls = [
                ToolCall(
                    id=tc.id,
                    function=ToolCallFunction(name=tc.function.name, arguments=tc.function.arguments or ""),
                )
                for tc in (message.tool_calls or [])
            ]

            if not tool_calls:
                final = ConversationMessage(role="assistant", content=message.content or "")
                appended.append(final)
                return TurnResult(content=final.content, messages=appended, response=response, upstream_calls=turn)

            step = [ConversationMessage(role="assistant", content=message.content, tool_calls=tool_calls)]
            step += await self._run_tools(tool_calls, turn)
            messages.extend(step)
            appended.extend(step)

        logger.warning(f"Max turns ({self.max_turns}) exceeded", extra={"user_id": self.user_id})
        raise MaxTurnsExceededError(self.max_turns)

    async def stream(self, history: List[ConversationMessage]) -> AsyncGenerator[Dict[str, Any], None]:
        """
        Same loop as ``complete`` over a streamed upstream.

        Yields chat completion chunks (as dicts) that carry text, and the
        finishing chunk of the final round. Text of a round is held until
        the round ends; a round that asks for tools yields nothing, so the
        streamed text is the same final answer ``complete`` returns.
        """
        messages = list(history)

        for turn in range(1, self.max_turns + 1):
            logger.info(f"Calling LLM with {len(messages)} messages", extra={"user_id": self.user_id, "turn": turn})
            stream = await self._upstream(self.client.chat.completions.create(**self._payload(messages, stream=True)))

            # Accumulators
            full_content = ""
            text_chunks: List[Dict[str, Any]] = []
            current_tool_calls: Dict[int, Dict[str, Any]] = {}
            finish_chunk = None

            try:
                chunks = stream.__aiter__()
                while True:
                    try:
                        chunk = await self._upstream(chunks.__anext__())
                    except StopAsyncIteration:
                        break
                    if not chunk.choices:
                        continue
                    choice = chunk.choices[0]
                    delta = choice.delta

                    if delta is not None and delta.content:
                        full_content += delta.content
                        text_chunks.append(chunk.model_dump(mode="json", exclude_none=True))

                    if delta is not None and delta.tool_calls:
                        for tc in delta.tool_calls:
                            idx = tc.index
                            if idx not in current_tool_calls:
                                current_tool_calls[idx] = {"id": "", "name": "", "arguments": ""}

                            if tc.id:
                                current_tool_calls[idx]["id"] += tc.id

                            if tc.function:
                                if tc.function.name:
                                    current_tool_calls[idx]["name"] += tc.function.name
                                if tc.function.arguments:
                                    current_tool_calls[idx]["arguments"] += tc.function.arguments

                    if choice.finish_reason and not (delta is not None and delta.content):
                        finish_chunk = chunk
            finally:
                await stream.close()

            if not current_tool_calls:
                for item in text_chunks:
                    yield item
                if finish_chunk is not None:
                    yield finish_chunk.model_dump(mode="json", exclude_none=True)
                return

            tool_calls = [
                ToolCall(id=tc["id"], function=ToolCallFunction(name=tc["name"], arguments=tc["arguments"]))
                for _, tc in sorted(current_tool_calls.items())
            ]
            messages.append(ConversationMessage(role="assistant", content=full_content or None, tool_calls=tool_calls))
            messages.extend(await self._run_tools(tool_calls, turn))

        logger.warning(f"Max turns ({self.max_turns}) exceeded", extra={"user_id": self.user_id})
        raise MaxTurnsExceededError(self.max_turns)
