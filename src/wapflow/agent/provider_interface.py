"""
Provider interface for wapflow.

This module is the only place that *directly* calls an LLM.  Everything else (orchestration loop,
dispatcher, render pipeline, tools) stays model-agnostic and speaks :class:`ConversationTurn` /
:class:`ProviderResponse`.

We support three back-ends out of the box:

1. **Gemini** via ``google-genai`` (default).
2. **OpenAI** chat completions with function tools.
3. **Anthropic** messages API with tools.

Additional providers can be added by subclassing :class:`BaseProvider` and registering via
:func:`register_provider`.
"""

import json
import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Sequence,
    Type,
)

from wapflow.config import settings
from wapflow.core.schema import (
    ConversationTurn,
    ProviderResponse,
    TextPart,
    ToolCall,
    ToolCallPart,
    ToolDeclaration,
    ToolResultPart,
)

logger = logging.getLogger(__name__)


class ProviderError(RuntimeError):
    """Raised when the provider cannot be reached or returns an unusable response."""


class ProviderBusyError(ProviderError):
    """Raised when ``send`` is issued while another request is outstanding on the same instance."""


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_PROVIDER_REGISTRY: dict[str, Type["BaseProvider"]] = {}


def register_provider(name: str) -> Callable:
    """Decorator to register a provider class under *name*."""

    def wrapper(cls: Type["BaseProvider"]) -> Type["BaseProvider"]:
        _PROVIDER_REGISTRY[name] = cls
        return cls

    return wrapper


def load_provider(
    name: str | None = None,
    *,
    system_instruction: str,
    tools: Sequence[ToolDeclaration] | None = None,
) -> "BaseProvider":
    """
    Factory that returns an instantiated provider client.

    Fallback order:
    1. *name* arg
    2. ``settings.PROVIDER`` env option
    3. default: ``"gemini"``
    """

    target = name or getattr(settings, "PROVIDER", "gemini")
    cls = _PROVIDER_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Provider '{target}' is not registered.")
    return cls(system_instruction=system_instruction, tools=tools)


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BaseProvider(ABC):
    """
    Stateful conversation client.

    ``send`` appends the given turns to the history only when ``persist`` is true, so stateless
    requests (render generation) never pollute later ones.  An instance is not reentrant.
    """

    def __init__(
        self,
        system_instruction: str,
        tools: Sequence[ToolDeclaration] | None = None,
        temperature: float | None = None,
    ):
        self.system_instruction = system_instruction
        self.tools: List[ToolDeclaration] = list(tools or [])
        self.temperature = settings.TEMPERATURE if temperature is None else temperature
        self.history: List[ConversationTurn] = []
        self._busy = False

    async def send(
        self, turns: Sequence[ConversationTurn], persist: bool = True
    ) -> ProviderResponse:
        """Send *turns* after the stored history and return the structured response."""
        if self._busy:
            raise ProviderBusyError(f"{type(self).__name__} already has a request in flight")
        self._busy = True
        conversation = [*self.history, *turns]
        try:
            response = await self._generate(conversation)
        except ProviderError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            logger.error("%s request failed: %s", type(self).__name__, exc)
            raise ProviderError(f"Error calling provider: {exc}") from exc
        finally:
            self._busy = False

        if persist:
            self.history.extend(turns)
        logger.debug(
            "Provider response: text=%r tool_calls=%s",
            response.text,
            [call.name for call in response.tool_calls],
        )
        return response

    @abstractmethod
    async def _generate(self, conversation: List[ConversationTurn]) -> ProviderResponse:
        """Issue one request for the full *conversation*."""


def _as_mapping(result: Any) -> Dict[str, Any]:
    return result if isinstance(result, dict) else {"result": result}


def _join(chunks: List[str]) -> str | None:
    return "\n".join(chunks) or None


# ---------------------------------------------------------------------------
# Concrete providers
# ---------------------------------------------------------------------------
@register_provider("gemini")
class GeminiProvider(BaseProvider):
    """Gemini provider on the ``google-genai`` async client."""

    def __init__(
        self, *args: Any, api_key: str | None = None, model: str | None = None, **kwargs: Any
    ):
        super().__init__(*args, **kwargs)
        from google import genai  # pylint: disable=import-outside-toplevel

        self._client = genai.Client(api_key=api_key or settings.GEMINI_API_KEY)
        self.model = model or settings.GEMINI_MODEL

    def _contents(self, conversation: List[ConversationTurn]) -> list:
        from google.genai import types  # pylint: disable=import-outside-toplevel

        contents = []
        for turn in conversation:
            parts = []
            for part in turn.parts:
                if isinstance(part, TextPart):
                    parts.append(types.Part(text=part.text))
                elif isinstance(part, ToolCallPart):
                    parts.append(
                        types.Part(
                            function_call=types.FunctionCall(
                                name=part.call.name, args=part.call.arguments
                            ),
                            thought_signature=part.call.signature,
                        )
                    )
                elif isinstance(part, ToolResultPart):
                    parts.append(
                        types.Part(
                            function_response=types.FunctionResponse(
                                name=part.result.name, response=_as_mapping(part.result.result)
                            )
                        )
                    )
            if parts:
                contents.append(types.Content(role=turn.role, parts=parts))
        return contents

    def _config(self) -> Any:
        from google.genai import types  # pylint: disable=import-outside-toplevel

        config = types.GenerateContentConfig(
            system_instruction=self.system_instruction,
            temperature=self.temperature,
            max_output_tokens=settings.MAX_OUTPUT_TOKENS,
        )
        if self.tools:
            config.tools = [
                types.Tool(
                    function_declarations=[
                        types.FunctionDeclaration(
                            name=decl.name,
                            description=decl.description,
                            parameters_json_schema=decl.parameters,
                        )
                        for decl in self.tools
                    ]
                )
            ]
            if settings.FORCE_TOOL_CALLS:
                config.tool_config = types.ToolConfig(
                    function_calling_config=types.FunctionCallingConfig(
                        mode=types.FunctionCallingConfigMode.ANY
                    )
                )
        if settings.INCLUDE_THOUGHTS:
            config.thinking_config = types.ThinkingConfig(include_thoughts=True)
        return config

    async def _generate(self, conversation: List[ConversationTurn]) -> ProviderResponse:
        response = await self._client.aio.models.generate_content(
            model=self.model, contents=self._contents(conversation), config=self._config()
        )
        if not response.candidates:
            raise ProviderError("No response from Gemini")

        content = response.candidates[0].content
        texts: List[str] = []
        thoughts: List[str] = []
        calls: List[ToolCall] = []
        for part in (content.parts if content else None) or []:
            if part.function_call:
                calls.append(
                    ToolCall(
                        name=part.function_call.name or "",
                        arguments=dict(part.function_call.args or {}),
                        id=part.function_call.id,
                        signature=part.thought_signature,
                    )
                )
            elif part.text and part.thought:
                thoughts.append(part.text)
            elif part.text:
                texts.append(part.text)
        return ProviderResponse(
            text="".join(texts) or None, thinking=_join(thoughts), tool_calls=calls
        )


@register_provider("openai")
class OpenAIProvider(BaseProvider):
    """OpenAI chat-completions provider with function tools."""

    def __init__(
        self, *args: Any, api_key: str | None = None, model: str | None = None, **kwargs: Any
    ):
        super().__init__(*args, **kwargs)
        import openai  # pylint: disable=import-outside-toplevel

        self._client = openai.AsyncOpenAI(api_key=api_key or settings.OPENAI_API_KEY)
        self.model = model or settings.OPENAI_MODEL

    def _messages(self, conversation: List[ConversationTurn]) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = [{"role": "system", "content": self.system_instruction}]
        for turn in conversation:
            texts = [part.text for part in turn.parts if isinstance(part, TextPart)]
            calls = [part.call for part in turn.parts if isinstance(part, ToolCallPart)]
            results = [part.result for part in turn.parts if isinstance(part, ToolResultPart)]
            if turn.role == "model":
                message: Dict[str, Any] = {"role": "assistant", "content": "\n".join(texts) or None}
                if calls:
                    message["tool_calls"] = [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {
                                "name": call.name,
                                "arguments": json.dumps(call.arguments),
                            },
                        }
                        for call in calls
                    ]
                messages.append(message)
                continue
            for result in results:
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": result.id,
                        "content": json.dumps(result.result, default=str),
                    }
                )
            if texts:
                messages.append({"role": "user", "content": "\n".join(texts)})
        return messages

    async def _generate(self, conversation: List[ConversationTurn]) -> ProviderResponse:
        kwargs: Dict[str, Any] = {}
        if self.tools:
            kwargs["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": decl.name,
                        "description": decl.description,
                        "parameters": decl.parameters,
                    },
                }
                for decl in self.tools
            ]
            if settings.FORCE_TOOL_CALLS:
                kwargs["tool_choice"] = "required"

        resp = await self._client.chat.completions.create(
            model=self.model,
            messages=self._messages(conversation),
            temperature=self.temperature,
            max_tokens=settings.MAX_OUTPUT_TOKENS,
            **kwargs,
        )
        if not resp.choices:
            raise ProviderError("No response from OpenAI")

        message = resp.choices[0].message
        calls: List[ToolCall] = []
        for tool_call in message.tool_calls or []:
            try:
                arguments = json.loads(tool_call.function.arguments or "{}")
            except json.JSONDecodeError as exc:
                raise ProviderError(
                    f"Malformed arguments for tool '{tool_call.function.name}': {exc}"
                ) from exc
            calls.append(
                ToolCall(name=tool_call.function.name, arguments=arguments, id=tool_call.id)
            )
        return ProviderResponse(text=message.content or None, tool_calls=calls)


@register_provider("anthropic")
class AnthropicProvider(BaseProvider):
    """Anthropic Claude provider with tools."""

    def __init__(
        self, *args: Any, api_key: str | None = None, model: str | None = None, **kwargs: Any
    ):
        super().__init__(*args, **kwargs)
        import anthropic  # pylint: disable=import-outside-toplevel

        self._client = anthropic.AsyncAnthropic(api_key=api_key or settings.ANTHROPIC_API_KEY)
        self.model = model or settings.ANTHROPIC_MODEL

    @staticmethod
    def _messages(conversation: List[ConversationTurn]) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = []
        for turn in conversation:
            blocks: List[Dict[str, Any]] = []
            for part in turn.parts:
                if isinstance(part, TextPart):
                    blocks.append({"type": "text", "text": part.text})
                elif isinstance(part, ToolCallPart):
                    blocks.append(
                        {
                            "type": "tool_use",
                            "id": part.call.id,
                            "name": part.call.name,
                            "input": part.call.arguments,
                        }
                    )
                elif isinstance(part, ToolResultPart):
                    blocks.append(
                        {
                            "type": "tool_result",
                            "tool_use_id": part.result.id,
                            "content": json.dumps(part.result.result, default=str),
                            "is_error": part.result.is_error,
                        }
                    )
            if blocks:
                role = "assistant" if turn.role == "model" else "user"
                messages.append({"role": role, "content": blocks})
        return messages

    async def _generate(self, conversation: List[ConversationTurn]) -> ProviderResponse:
        kwargs: Dict[str, Any] = {}
        if self.tools:
            kwargs["tools"] = [
                {
                    "name": decl.name,
                    "description": decl.description,
                    "input_schema": decl.parameters,
                }
                for decl in self.tools
            ]
            if settings.FORCE_TOOL_CALLS:
                kwargs["tool_choice"] = {"type": "any"}

        response = await self._client.messages.create(
            model=self.model,
            max_tokens=settings.MAX_OUTPUT_TOKENS,
            system=self.system_instruction,
            messages=self._messages(conversation),
            temperature=self.temperature,
            **kwargs,
        )

        texts: List[str] = []
        thoughts: List[str] = []
        calls: List[ToolCall] = []
        for block in response.content:
            if block.type == "text":
                texts.append(block.text)
            elif block.type == "thinking":
                thoughts.append(block.thinking)
            elif block.type == "tool_use":
                calls.append(ToolCall(name=block.name, arguments=dict(block.input), id=block.id))
        return ProviderResponse(
            text="".join(texts) or None, thinking=_join(thoughts), tool_calls=calls
        )
