import json
from enum import Enum
from pydantic import BaseModel, ConfigDict, model_validator
from typing import List, Optional, Any, Dict, Literal


class ErrorType(str, Enum):
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    CONSTRAINT_VIOLATION = "constraint_violation"
    CONNECTION_ERROR = "connection_error"
    UNKNOWN_TOOL = "unknown_tool"
    UNKNOWN_ERROR = "unknown_error"


class ToolCallFunction(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    arguments: str  # JSON string, as sent by the model


class ToolCall(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: str = "function"
    function: ToolCallFunction


class ConversationMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant", "tool"]
    content: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    tool_call_id: Optional[str] = None
    name: Optional[str] = None

    @model_validator(mode="after")
    def check_role_fields(self):
        if self.role == "tool" and not self.tool_call_id:
            raise ValueError("tool messages require a tool_call_id")
        if self.tool_calls and self.role != "assistant":
            raise ValueError("only assistant messages may carry tool_calls")
        return self

    def to_openai(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ToolResult(BaseModel):
    success: bool
    data: Optional[Any] = None
    message: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[ErrorType] = None
    technical_details: Optional[str] = None
    validation_errors: Optional[List[str]] = None

    @classmethod
    def ok(cls, data: Any = None, message: Optional[str] = None) -> "ToolResult":
        return cls(success=True, data=data, message=message)

    @classmethod
    def failure(
        cls,
        error_type: ErrorType,
        error: str,
        technical_details: Optional[str] = None,
        validation_errors: Optional[List[str]] = None,
    ) -> "ToolResult":
        return cls(
            success=False,
            error=error,
            error_type=error_type,
            technical_details=technical_details,
            validation_errors=validation_errors,
        )

    def to_content(self, max_chars: Optional[int] = None) -> str:
        content = json.dumps(self.model_dump(mode="json", exclude_none=True), default=str)
        if max_chars is not None and len(content) > max_chars:
            content = content[:max_chars] + "...[truncated]"
        return content


class ToolDefinition(BaseModel):
    name: str
    description: str
    parameters: Dict[str, Any]

    def to_openai(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class TurnResult(BaseModel):
    """Outcome of one user turn: the final text plus everything appended along the way."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    content: str
    messages: List[ConversationMessage]
    response: Any = None  # final upstream ChatCompletion
    upstream_calls: int = 0
