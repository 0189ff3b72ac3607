"""
Planner interface for the code reviewer.

This module is the only place that *directly* calls an LLM.  Everything else (agent loop, tools,
run coordinator) stays model-agnostic: a planner receives the conversation so far plus the tool
declarations, and answers with either tool calls or a final verdict.

We support these back-ends out of the box:

1. **Google Gemini**, **OpenAI** and **Anthropic** via their SDKs, using native tool calling
   (requires API keys).
2. **Hugging Face Text-Generation-Inference (TGI)** for self-hosted models, using a JSON reply
   protocol.

Additional providers can be added by subclassing :class:`BasePlanner` and registering via
:func:`register_planner`.
"""

import json
import logging
import re
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    List,
    Sequence,
    Type,
)

import httpx
from pydantic import (
    BaseModel,
    Field,
    ValidationError,
)

from code_reviewer.agent.conversation import Conversation
from code_reviewer.config import settings
from code_reviewer.core.errors import (
    RemoteFailure,
    RemoteTimeout,
)
from code_reviewer.core.schema import (
    PlannerReply,
    Role,
    ToolCall,
    ToolDeclaration,
    ToolResult,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic models for response validation
class PlannerResponse(BaseModel):
    """Validates JSON replies from models without native tool calling."""

    tool_calls: List[Dict[str, Any]] = Field(default_factory=list)
    answer: str | None = None


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_PLANNER_REGISTRY: dict[str, Type["BasePlanner"]] = {}


def register_planner(name: str) -> Callable:
    """Decorator to register a planner class under *name*."""

    def wrapper(cls: Type["BasePlanner"]) -> Type["BasePlanner"]:
        _PLANNER_REGISTRY[name] = cls
        return cls

    return wrapper


def get_planner_class(name: str | None = None) -> Type["BasePlanner"]:
    """Return the planner class registered under *name* (default ``settings.PLANNER``)."""
    target = name or getattr(settings, "PLANNER", "gemini")
    cls = _PLANNER_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Planner '{target}' is not registered.")
    return cls


def load_planner(name: str | None = None, **kwargs: Any) -> "BasePlanner":
    """
    Factory that returns an instantiated planner.

    Fallback order:
    1. *name* arg
    2. ``settings.PLANNER`` env option
    3. default: ``"gemini"``

    Keyword arguments (``api_key``, ``model``, ``timeout``) are passed to the constructor.
    """
    return get_planner_class(name)(**kwargs)


def tool_result_payload(result: ToolResult) -> Dict[str, Any]:
    """Wrap a tool's output the way it is reported back to the model."""
    if result.is_error:
        return result.output if isinstance(result.output, dict) else {"error": str(result.output)}
    return {"result": result.output}


def _loads_args(raw: str | None) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        args = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Model sent tool arguments that are not JSON: %r", raw[:200])
        return {}
    return args if isinstance(args, dict) else {}


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BasePlanner(ABC):
    """Abstract planner that turns a conversation into tool calls or a verdict."""

    # Common behavioral directive for all planners
    SYSTEM_PROMPT: ClassVar[
        str
    ] = """\
You are an expert AI code reviewer.
Your task is to review and improve source code files.
Rules:
- Call list_files at most once
- Read files one at a time
- ALWAYS call write_file for every file you review
- Add brief comments explaining changes
Fix the following:
- Bugs (logic errors, async issues, null/undefined)
- Security issues (hardcoded secrets, injections, unsafe APIs)
- Code quality (unused code, bad naming, complexity)
- HTML issues (doctype, accessibility, missing meta/alt)
- CSS issues (syntax errors, duplication, compatibility)
Process files sequentially and be concise.
When the file is done, reply with a short summary of the changes and call no more tools.
"""

    DEFAULT_MODEL: ClassVar[str] = ""
    requires_api_key: ClassVar[bool] = True

    def __init__(
        self, api_key: str | None = None, model: str | None = None, timeout: float = 60.0
    ) -> None:
        self.api_key = api_key
        self.model = model or self.DEFAULT_MODEL
        self.timeout = timeout

    @abstractmethod
    def plan(self, conversation: Conversation, tools: Sequence[ToolDeclaration]) -> PlannerReply:
        """Return the model's next step for *conversation*."""


# ---------------------------------------------------------------------------
# Concrete planners
# ---------------------------------------------------------------------------
def to_openai_messages(system_prompt: str, conversation: Conversation) -> List[Dict[str, Any]]:
    """Convert *conversation* to chat-completions messages."""
    messages: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    for turn in conversation.turns:
        if turn.tool_call is not None:
            call = turn.tool_call
            messages.append(
                {
                    "role": "assistant",
                    "content": None,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {"name": call.name, "arguments": json.dumps(call.args)},
                        }
                    ],
                }
            )
        elif turn.tool_result is not None:
            messages.append(
                {
                    "role": "tool",
                    "tool_call_id": turn.tool_result.call_id,
                    "content": json.dumps(tool_result_payload(turn.tool_result), default=str),
                }
            )
        else:
            role = "user" if turn.role is Role.USER else "assistant"
            messages.append({"role": role, "content": turn.text})
    return messages


@register_planner("openai")
class OpenAIPlanner(BasePlanner):
    """OpenAI chat-completions planner with native function calling."""

    DEFAULT_MODEL = "gpt-4o-mini"

    def plan(self, conversation: Conversation, tools: Sequence[ToolDeclaration]) -> PlannerReply:
        import openai  # pylint: disable=import-outside-toplevel

        client = openai.OpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        try:
            resp = client.chat.completions.create(
                model=self.model,
                messages=to_openai_messages(self.SYSTEM_PROMPT, conversation),  # type: ignore
                tools=[
                    {
                        "type": "function",
                        "function": {
                            "name": decl.name,
                            "description": decl.description,
                            "parameters": decl.as_json_schema(),
                        },
                    }
                    for decl in tools
                ],
                temperature=0.2,
            )
        except openai.APITimeoutError as exc:
            raise RemoteTimeout(f"OpenAI request timed out after {self.timeout}s") from exc
        except openai.OpenAIError as exc:
            raise RemoteFailure(f"Error calling OpenAI: {exc}") from exc

        message = resp.choices[0].message
        calls = [
            ToolCall(id=tc.id, name=tc.function.name, args=_loads_args(tc.function.arguments))
            for tc in message.tool_calls or []
        ]
        logger.debug("OpenAI planner returned %d tool calls", len(calls))
        return PlannerReply(tool_calls=calls, answer=None if calls else message.content or "")


def to_anthropic_messages(conversation: Conversation) -> List[Dict[str, Any]]:
    """Convert *conversation* to Anthropic messages (strictly alternating roles)."""
    messages: List[Dict[str, Any]] = []
    for turn in conversation.turns:
        if turn.tool_call is not None:
            call = turn.tool_call
            messages.append(
                {
                    "role": "assistant",
                    "content": [
                        {"type": "tool_use", "id": call.id, "name": call.name, "input": call.args}
                    ],
                }
            )
        elif turn.tool_result is not None:
            result = turn.tool_result
            messages.append(
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "tool_result",
                            "tool_use_id": result.call_id,
                            "content": json.dumps(tool_result_payload(result), default=str),
                            "is_error": result.is_error,
                        }
                    ],
                }
            )
        else:
            role = "user" if turn.role is Role.USER else "assistant"
            messages.append({"role": role, "content": turn.text})
    return messages


@register_planner("anthropic")
class AnthropicPlanner(BasePlanner):
    """Anthropic Claude-based planner."""

    DEFAULT_MODEL = "claude-3-5-haiku-latest"

    def plan(self, conversation: Conversation, tools: Sequence[ToolDeclaration]) -> PlannerReply:
        import anthropic  # pylint: disable=import-outside-toplevel

        client = anthropic.Anthropic(api_key=self.api_key, timeout=self.timeout, max_retries=0)
        try:
            response = client.messages.create(
                model=self.model,
                max_tokens=8192,
                system=self.SYSTEM_PROMPT,
                messages=to_anthropic_messages(conversation),  # type: ignore
                tools=[
                    {
                        "name": decl.name,
                        "description": decl.description,
                        "input_schema": decl.as_json_schema(),
                    }
                    for decl in tools
                ],
                temperature=0.2,
            )
        except anthropic.APITimeoutError as exc:
            raise RemoteTimeout(f"Anthropic request timed out after {self.timeout}s") from exc
        except anthropic.AnthropicError as exc:
            raise RemoteFailure(f"Error calling Anthropic: {exc}") from exc

        calls = [
            ToolCall(id=block.id, name=block.name, args=dict(block.input))
            for block in response.content
            if block.type == "tool_use"
        ]
        text = "".join(block.text for block in response.content if block.type == "text")
        logger.debug("Anthropic planner returned %d tool calls", len(calls))
        return PlannerReply(tool_calls=calls, answer=None if calls else text)


def to_gemini_contents(conversation: Conversation) -> List[Any]:
    """Convert *conversation* to ``google.genai`` contents."""
    from google.genai import types  # pylint: disable=import-outside-toplevel

    contents = []
    for turn in conversation.turns:
        role = "user" if turn.role is Role.USER else "model"
        if turn.tool_call is not None:
            part = types.Part.from_function_call(name=turn.tool_call.name, args=turn.tool_call.args)
        elif turn.tool_result is not None:
            part = types.Part.from_function_response(
                name=turn.tool_result.name, response=tool_result_payload(turn.tool_result)
            )
        else:
            part = types.Part.from_text(text=turn.text or "")
        contents.append(types.Content(role=role, parts=[part]))
    return contents


def to_gemini_tools(tools: Sequence[ToolDeclaration]) -> List[Any]:
    """Convert declarations to a single ``google.genai`` Tool."""
    from google.genai import types  # pylint: disable=import-outside-toplevel

    declarations = []
    for decl in tools:
        schema = decl.as_json_schema()
        declarations.append(
            types.FunctionDeclaration(
                name=decl.name,
                description=decl.description,
                parameters=types.Schema(
                    type=types.Type.OBJECT,
                    properties={
                        name: types.Schema(type=types.Type(prop["type"].upper()))
                        for name, prop in schema["properties"].items()
                    },
                    required=schema["required"],
                ),
            )
        )
    return [types.Tool(function_declarations=declarations)]


@register_planner("gemini")
class GeminiPlanner(BasePlanner):
    """Google Gemini planner using ``google-genai`` function calling."""

    DEFAULT_MODEL = "gemini-2.0-flash"

    def plan(self, conversation: Conversation, tools: Sequence[ToolDeclaration]) -> PlannerReply:
        # pylint: disable=import-outside-toplevel
        from google import genai
        from google.genai import (
            errors,
            types,
        )

        client = genai.Client(
            api_key=self.api_key, http_options=types.HttpOptions(timeout=int(self.timeout * 1000))
        )
        try:
            response = client.models.generate_content(
                model=self.model,
                contents=to_gemini_contents(conversation),
                config=types.GenerateContentConfig(
                    system_instruction=self.SYSTEM_PROMPT,
                    tools=to_gemini_tools(tools),
                    temperature=0.2,
                    automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
                ),
            )
        except httpx.TimeoutException as exc:
            raise RemoteTimeout(f"Gemini request timed out after {self.timeout}s") from exc
        except (errors.APIError, httpx.HTTPError) as exc:
            raise RemoteFailure(f"Error calling Gemini: {exc}") from exc

        calls = []
        for fc in response.function_calls or []:
            kwargs: Dict[str, Any] = {"name": fc.name, "args": dict(fc.args or {})}
            if fc.id:
                kwargs["id"] = fc.id
            calls.append(ToolCall(**kwargs))
        logger.debug("Gemini planner returned %d tool calls", len(calls))
        return PlannerReply(tool_calls=calls, answer=None if calls else response.text or "")


def _sanitize_json_string(content: str) -> str:
    """Clean up JSON strings returned by LLMs."""
    # Strip markdown code blocks if present
    if "```" in content:
        match = re.search(r"```(?:json)?\s*(.+?)```", content, re.DOTALL)
        if match:
            content = match.group(1).strip()

    # Remove control characters except whitespace
    content = "".join(ch for ch in content if ch >= " " or ch in "\n\r\t")

    # Keep only the outermost JSON object, if there is one
    open_idx = content.find("{")
    if open_idx >= 0:
        depth = 0
        in_string = False
        escaped = False
        for i in range(open_idx, len(content)):
            ch = content[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return content[open_idx : i + 1]
    return content


@register_planner("tgi")
class TGIPlanner(BasePlanner):
    """TGI-based planner with httpx client and Pydantic validation."""

    requires_api_key = False

    PROTOCOL_PROMPT: ClassVar[
        str
    ] = """\
When you need to use a tool, respond with JSON like:
{"tool": "<name>", "args": { ... }}
When the file is done, respond with:
{"answer": "<short summary>"}
Only one object, no extra text.
"""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float = 60.0,
        endpoint: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(api_key=api_key, model=model, timeout=timeout)
        self.endpoint = endpoint or settings.TGI_ENDPOINT
        self._transport = transport

    def _build_prompt(self, conversation: Conversation, tools: Sequence[ToolDeclaration]) -> str:
        """Flatten directive, tool list and history into a single completion prompt."""
        tools_info = []
        for decl in tools:
            param_desc = ", ".join(f"{p}: {info.type}" for p, info in decl.parameters.items())
            tools_info.append(f"- {decl.name}({param_desc}): {decl.description}")

        lines = [self.SYSTEM_PROMPT, self.PROTOCOL_PROMPT, "Available tools:", *tools_info, ""]
        for turn in conversation.turns:
            if turn.tool_call is not None:
                call = {"tool": turn.tool_call.name, "args": turn.tool_call.args}
                lines.append(f"Assistant: {json.dumps(call)}")
            elif turn.tool_result is not None:
                payload = json.dumps(tool_result_payload(turn.tool_result), default=str)
                lines.append(f"Tool ({turn.tool_result.name}): {payload}")
            elif turn.role is Role.USER:
                lines.append(f"User: {turn.text}")
            else:
                lines.append(f"Assistant: {turn.text}")
        lines.append("Assistant:")
        return "\n".join(lines)

    def _parse_response(self, content: str) -> PlannerReply:
        """Parse and validate the JSON reply; anything unparseable is treated as the verdict."""
        cleaned = _sanitize_json_string(content)
        try:
            parsed = json.loads(cleaned)
        except json.JSONDecodeError:
            logger.warning("TGI reply is not JSON; treating it as the final answer")
            return PlannerReply(answer=content.strip())
        if not isinstance(parsed, dict):
            return PlannerReply(answer=content.strip())
        if "tool" in parsed:
            parsed = {"tool_calls": [{"name": parsed["tool"], "args": parsed.get("args", {})}]}

        try:
            response = PlannerResponse.model_validate(parsed)
            calls = [
                ToolCall(name=call["name"], args=call.get("args") or {})
                for call in response.tool_calls
                if "name" in call
            ]
        except ValidationError as e:
            logger.error("Failed to parse LLM response: %s", e)
            return PlannerReply(answer=content.strip())

        if calls:
            return PlannerReply(tool_calls=calls)
        return PlannerReply(answer=response.answer or "")

    def plan(self, conversation: Conversation, tools: Sequence[ToolDeclaration]) -> PlannerReply:
        """Call TGI endpoint and return tool calls or the final answer."""
        payload = {
            "inputs": self._build_prompt(conversation, tools),
            "parameters": {"max_new_tokens": 4096, "temperature": 0.2, "stop": ["User:", "</s>"]},
        }

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                resp = client.post(self.endpoint, json=payload)
                resp.raise_for_status()
                content = resp.json()["generated_text"]
        except httpx.TimeoutException as exc:
            raise RemoteTimeout(f"TGI request timed out after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            raise RemoteFailure(f"Error calling TGI endpoint: {exc}") from exc
        except (KeyError, TypeError, ValueError) as exc:
            raise RemoteFailure(f"Malformed TGI response: {exc}") from exc

        logger.debug("TGI planner response: %s", content)
        return self._parse_response(content)
