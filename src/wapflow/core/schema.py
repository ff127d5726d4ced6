"""
Schema definitions for provider <-> engine <-> tool messages.

These data models serve as the contract between the reasoning provider, the orchestration loop, the
render pipeline and individual site tools.  We keep them separate from runtime logic so they can be
imported anywhere without side-effects.
"""

from typing import (
    Annotated,
    Any,
    Dict,
    List,
    Literal,
    Optional,
    Union,
)

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
)

RENDER_TOOL_NAME = "render"
"""Reserved tool name of the UI-generation operation."""


# ---------------------------------------------------------------------------
# Tool calls and results
# ---------------------------------------------------------------------------
class ToolCall(BaseModel):
    """A call that the provider wants the engine to execute."""

    name: str = Field(..., description="Registered tool name or 'render'")
    arguments: Dict[str, Any] = Field(default_factory=dict, description="Arguments for the tool")
    id: Optional[str] = Field(None, description="Provider call identifier, if the provider has one")
    signature: Optional[bytes] = Field(None, exclude=True, repr=False)  # opaque, echoed back

    @property
    def is_render(self) -> bool:
        """True when the call names the reserved render operation."""
        return self.name == RENDER_TOOL_NAME


class ToolResult(BaseModel):
    """Outcome of one tool call; failures are carried as ``{"error": message}``."""

    name: str
    result: Any = None
    id: Optional[str] = None

    @classmethod
    def error(cls, call: ToolCall, message: str) -> "ToolResult":
        """Build an error result paired with *call*."""
        return cls(name=call.name, result={"error": message}, id=call.id)

    @property
    def is_error(self) -> bool:
        """True if the result is an error payload."""
        return isinstance(self.result, dict) and "error" in self.result


# ---------------------------------------------------------------------------
# Render call arguments
# ---------------------------------------------------------------------------
StepType = Literal["preview", "confirm", "progress", "result", "error"]
ActionVariant = Literal["primary", "danger", "secondary", "success"]


class ActionSpec(BaseModel):
    """An action the generated UI offers to the user."""

    id: str
    label: str
    variant: Optional[ActionVariant] = None
    continues: bool


class RenderArgs(BaseModel):
    """Validated arguments of a render call."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    data_structure_description: str = Field(
        ...,
        validation_alias=AliasChoices("dataStructureDescription", "dataStructure"),
        serialization_alias="dataStructureDescription",
    )
    data: Any
    main_goal: str = Field(..., alias="mainGoal")
    sub_goal: str = Field(..., alias="subGoal")
    step_type: StepType = Field(..., alias="stepType")
    actions: List[ActionSpec]
    metadata: Optional[Dict[str, Any]] = None
    task_completed: bool = Field(False, alias="taskCompleted")

    @property
    def requires_user_action(self) -> bool:
        """A render suspends for a human decision iff an action continues and it is not final."""
        if self.task_completed:
            return False
        return any(action.continues for action in self.actions)


class UserAction(BaseModel):
    """A decision submitted by the user through the generated UI."""

    model_config = ConfigDict(populate_by_name=True)

    action_id: str = Field(..., alias="actionId")
    payload: Optional[Dict[str, Any]] = None

    def as_result(self) -> Dict[str, Any]:
        """Shape fed back to the provider as the render call's result."""
        result: Dict[str, Any] = {"type": "userAction", "actionId": self.action_id}
        if self.payload is not None:
            result["payload"] = self.payload
        return result


# ---------------------------------------------------------------------------
# Conversation turns
# ---------------------------------------------------------------------------
class TextPart(BaseModel):
    """Plain text."""

    type: Literal["text"] = "text"
    text: str


class ThoughtPart(BaseModel):
    """Model reasoning trace (informational only)."""

    type: Literal["thought"] = "thought"
    text: str


class ToolCallPart(BaseModel):
    """A tool call emitted by the model."""

    type: Literal["tool_call"] = "tool_call"
    call: ToolCall


class ToolResultPart(BaseModel):
    """The result paired with a previously emitted tool call."""

    type: Literal["tool_result"] = "tool_result"
    result: ToolResult


TurnPart = Annotated[
    Union[TextPart, ThoughtPart, ToolCallPart, ToolResultPart], Field(discriminator="type")
]


class ConversationTurn(BaseModel):
    """One role-tagged unit of conversation content."""

    role: Literal["user", "model"]
    parts: List[TurnPart] = Field(default_factory=list)

    @classmethod
    def user_text(cls, text: str) -> "ConversationTurn":
        return cls(role="user", parts=[TextPart(text=text)])

    @classmethod
    def tool_calls(cls, calls: List[ToolCall]) -> "ConversationTurn":
        return cls(role="model", parts=[ToolCallPart(call=call) for call in calls])

    @classmethod
    def tool_results(cls, results: List[ToolResult]) -> "ConversationTurn":
        return cls(role="user", parts=[ToolResultPart(result=result) for result in results])


# ---------------------------------------------------------------------------
# Provider boundary
# ---------------------------------------------------------------------------
class ProviderResponse(BaseModel):
    """Structured response of one provider request."""

    text: Optional[str] = None
    thinking: Optional[str] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)


class ToolDeclaration(BaseModel):
    """Provider-neutral tool declaration; *parameters* is a JSON Schema object."""

    name: str
    description: str = ""
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
