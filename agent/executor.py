import json
import asyncio
from typing import List, NamedTuple, Optional

from sqlalchemy.exc import DisconnectionError, IntegrityError, InterfaceError, OperationalError

from agent.models import ConversationMessage, ErrorType, ToolCall, ToolResult
from agent.tools import ToolArgumentError, ToolRegistry
from backend.core.store import TrainingStore
from core.config import settings
from core.errors import ConstraintViolationError, NotFoundError, PermissionDeniedError, StoreError
from core.logger import logger


class ErrorInfo(NamedTuple):
    error_type: ErrorType
    message: str
    technical_details: str


USER_MESSAGES = {
    ErrorType.NOT_FOUND: "The requested record was not found or you don't have access to it",
    ErrorType.PERMISSION_DENIED: "You don't have permission to perform this action",
    ErrorType.CONSTRAINT_VIOLATION: "This operation violates data integrity rules. Please check your input.",
    ErrorType.CONNECTION_ERROR: "Database connection issue. Please try again.",
    ErrorType.UNKNOWN_ERROR: "An unexpected database error occurred",
}


def categorize_error(exc: Exception) -> ErrorInfo:
    """Map a store failure to an error type, a user-safe message and the raw detail."""
    if isinstance(exc, NotFoundError):
        error_type = ErrorType.NOT_FOUND
    elif isinstance(exc, PermissionDeniedError):
        error_type = ErrorType.PERMISSION_DENIED
    elif isinstance(exc, (ConstraintViolationError, IntegrityError)):
        error_type = ErrorType.CONSTRAINT_VIOLATION
    elif isinstance(exc, (OperationalError, InterfaceError, DisconnectionError, ConnectionError, TimeoutError)):
        error_type = ErrorType.CONNECTION_ERROR
    else:
        error_type = ErrorType.UNKNOWN_ERROR

    if isinstance(exc, StoreError):
        parts = [exc.message, exc.details, exc.hint]
        details = " | ".join(p for p in parts if p)
    else:
        details = f"{type(exc).__name__}: {exc}"
    return ErrorInfo(error_type, USER_MESSAGES[error_type], details)


class ToolExecutor:
    def __init__(
        self,
        registry: ToolRegistry,
        store: TrainingStore,
        max_result_chars: int = settings.TOOL_RESULT_MAX_CHARS,
        parallel: bool = settings.PARALLEL_TOOL_CALLS,
    ):
        self.registry = registry
        self.store = store
        self.max_result_chars = max_result_chars
        self.parallel = parallel

    async def execute(self, call: ToolCall, user_id: str) -> ToolResult:
        """Run one tool call. Never raises for tool-level failures."""
        name = call.function.name
        log_ctx = {"user_id": user_id, "tool": name, "tool_call_id": call.id}

        tool = self.registry.get(name)
        if tool is None:
            logger.warning(f"Unknown tool requested: {name}", extra=log_ctx)
            return ToolResult.failure(ErrorType.UNKNOWN_TOOL, f"Unknown tool: {name}")

        try:
            raw = json.loads(call.function.arguments or "{}")
        except json.JSONDecodeError as e:
            logger.warning(f"Tool arguments are not valid JSON: {e}", extra=log_ctx)
            return ToolResult.failure(
                ErrorType.VALIDATION_ERROR,
                "Tool arguments are not valid JSON",
                validation_errors=[f"arguments: {e.msg}"],
            )
        if not isinstance(raw, dict):
            return ToolResult.failure(
                ErrorType.VALIDATION_ERROR,
                "Tool arguments must be a JSON object",
                validation_errors=["arguments: must be an object"],
            )

        try:
            request = tool.parse(raw)
        except ToolArgumentError as e:
            logger.warning(f"Invalid arguments for {name}: {e}", extra=log_ctx)
            return ToolResult.failure(ErrorType.VALIDATION_ERROR, "Invalid tool arguments", validation_errors=e.errors)

        logger.info(f"Tool Call: {name} ({type(request).__name__})", extra=log_ctx)
        try:
            return await request.apply(self.store, user_id)
        except Exception as e:
            info = categorize_error(e)
            if info.error_type == ErrorType.UNKNOWN_ERROR:
                logger.error(f"Tool Execution Error: {info.technical_details}", extra=log_ctx, exc_info=True)
            else:
                logger.warning(f"Tool {name} failed: {info.technical_details}", extra=log_ctx)
            return ToolResult.failure(info.error_type, info.message, technical_details=info.technical_details)

    async def execute_batch(self, calls: List[ToolCall], user_id: str) -> List[ToolResult]:
        """
        Run every call of one assistant turn and return results in call order.

        A started batch is shielded: cancelling the caller does not stop the
        calls that are already running.
        """
        if not self.parallel:
            return await asyncio.shield(self._run_sequential(calls, user_id))
        batch = asyncio.gather(*(self.execute(call, user_id) for call in calls))
        return list(await asyncio.shield(batch))

    async def _run_sequential(self, calls: List[ToolCall], user_id: str) -> List[ToolResult]:
        return [await self.execute(call, user_id) for call in calls]

    def to_tool_message(self, call: ToolCall, result: ToolResult, max_chars: Optional[int] = None) -> ConversationMessage:
        return ConversationMessage(
            role="tool",
            tool_call_id=call.id,
            name=call.function.name,
            content=result.to_content(max_chars or self.max_result_chars),
        )
