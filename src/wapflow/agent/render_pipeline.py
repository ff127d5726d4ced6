"""
Render pipeline: generated UI for render calls.

Each render call goes through two phases:

1. **generate** - one stateless request to a dedicated provider produces a Jinja2 template that
   defines ``{% macro render(data, onAction) %}``.  Code fences are stripped and the text is checked
   against a static safety policy before anything runs.
2. **execute** - the template is compiled in a :class:`~jinja2.sandbox.SandboxedEnvironment` with
   no globals and the macro is called with exactly two values: the call's ``data`` and an
   ``onAction`` binder.  The result is an HTML fragment.

The binder does not reach into the engine: calling ``onAction({"actionId": ...})`` inside the
template only emits the ``data-wap-action`` attribute that lets the host route a click back to the
engine's action-submission entry point, which feeds the confirmation gate.
"""

import copy
import json
import logging
import re
from typing import (
    Any,
    List,
    Tuple,
)

from jinja2 import (
    ChainableUndefined,
    TemplateError,
)
from jinja2.runtime import Macro
from jinja2.sandbox import SandboxedEnvironment
from markupsafe import Markup
from pydantic import ValidationError

from wapflow.agent.prompts import build_render_prompt
from wapflow.agent.provider_interface import BaseProvider
from wapflow.core.schema import (
    ConversationTurn,
    RenderArgs,
    UserAction,
)

logger = logging.getLogger(__name__)


class RenderGenerationError(RuntimeError):
    """The render provider returned nothing usable."""


class RenderUnsafeError(RenderGenerationError):
    """Generated code violates the render safety policy."""


class RenderExecutionError(RuntimeError):
    """The sandboxed template failed while rendering."""


class RenderCancelledError(RuntimeError):
    """The user declined to retry a failed render."""


# ---------------------------------------------------------------------------
# Safety policy
# ---------------------------------------------------------------------------
_UNSAFE_PATTERNS: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"\beval\s*\("), "dynamic evaluation (eval)"),
    (re.compile(r"\bexec\s*\("), "dynamic evaluation (exec)"),
    (re.compile(r"\bFunction\s*\("), "dynamic evaluation (Function)"),
    (re.compile(r"__"), "dunder access"),
    (re.compile(r"\{%-?\s*(import|include|extends|from)\b"), "template loading"),
    (re.compile(r"<\s*script", re.IGNORECASE), "script tag"),
    (re.compile(r"javascript\s*:", re.IGNORECASE), "javascript: URL"),
    (re.compile(r"<[^>]*\son[a-z]+\s*=", re.IGNORECASE), "inline event handler"),
    (re.compile(r"document\s*\.\s*write"), "document.write"),
    (re.compile(r"(inner|outer)HTML\s*="), "DOM mutation"),
]

_SIGNATURE = re.compile(r"\{%-?\s*macro\s+render\s*\(\s*data\s*,\s*onAction\s*\)\s*-?%\}")
_RENDER_ARGUMENTS = ("data", "onAction")


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    code = text.strip()
    code = re.sub(r"^```[\w+-]*[ \t]*\n?", "", code)
    code = re.sub(r"\n?[ \t]*```$", "", code)
    return code.strip()


def create_sandbox() -> SandboxedEnvironment:
    """Jinja environment with autoescaping and no globals."""
    env = SandboxedEnvironment(autoescape=True, undefined=ChainableUndefined)
    env.globals = {}
    return env


def check_render_code(code: str, env: SandboxedEnvironment | None = None) -> Macro:
    """
    Apply the static safety policy to *code* and return its compiled ``render`` macro.

    Raises
    ------
    RenderUnsafeError
        If a forbidden construct is present, the template does not compile, or the ``render``
        macro is missing or has a different signature.
    """
    for pattern, label in _UNSAFE_PATTERNS:
        if pattern.search(code):
            raise RenderUnsafeError(f"Generated render code contains unsafe pattern: {label}")
    if not _SIGNATURE.search(code):
        raise RenderUnsafeError("Generated render code does not match the required signature")

    env = env or create_sandbox()
    try:
        module = env.from_string(code).module
    except TemplateError as exc:
        raise RenderUnsafeError(f"Generated render code does not compile: {exc}") from exc

    macro = getattr(module, "render", None)
    if not isinstance(macro, Macro) or tuple(macro.arguments) != _RENDER_ARGUMENTS:
        raise RenderUnsafeError("Generated render code does not match the required signature")
    return macro


# ---------------------------------------------------------------------------
# Sandbox bindings
# ---------------------------------------------------------------------------
class ActionBinder:
    """The ``onAction`` value handed to a generated template."""

    def __init__(self, args: RenderArgs):
        self._declared = {action.id for action in args.actions}
        self.bound: List[str] = []

    def __call__(self, action: Any) -> Markup:
        if isinstance(action, str):
            action = {"actionId": action}
        try:
            user_action = UserAction.model_validate(action)
        except ValidationError as exc:
            raise RenderExecutionError(f"Invalid action binding {action!r}: {exc}") from exc
        if user_action.action_id not in self._declared:
            logger.warning("Template bound undeclared action '%s'", user_action.action_id)
        self.bound.append(user_action.action_id)
        payload = json.dumps(user_action.model_dump(by_alias=True, exclude_none=True))
        return Markup('data-wap-action="{}"').format(payload)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------
class RenderPipeline:
    """Generates, checks and executes render templates."""

    def __init__(self, provider: BaseProvider):
        self._provider = provider
        self._env = create_sandbox()

    async def generate(self, args: RenderArgs) -> str:
        """Ask the render provider for a template and return it once it passes the safety check."""
        prompt = build_render_prompt(args)
        response = await self._provider.send([ConversationTurn.user_text(prompt)], persist=False)
        if not response.text:
            raise RenderGenerationError("Empty response from render provider")
        code = strip_code_fences(response.text)
        check_render_code(code, self._env)
        logger.debug("Generated render template (%d chars) for '%s'", len(code), args.sub_goal)
        return code

    def execute(self, code: str, data: Any, binder: ActionBinder) -> str:
        """Run *code* in the sandbox with ``data`` and ``onAction`` only."""
        macro = check_render_code(code, self._env)
        try:
            return str(macro(copy.deepcopy(data), binder))
        except RenderExecutionError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            raise RenderExecutionError(f"Render template failed: {exc}") from exc
