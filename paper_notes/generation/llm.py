"""Structured generation helpers backed by Gemini function calling."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from google import genai
from google.genai import types

from paper_notes.config import Settings
from paper_notes.deadline import Deadline, io_timeout
from paper_notes.errors import ConfigError, GenerationError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolSpec:
    """A single function declaration the model is forced to call."""

    name: str
    description: str
    parameters: Dict[str, Any]

    def declaration(self) -> types.Tool:
        return types.Tool(
            function_declarations=[
                types.FunctionDeclaration(
                    name=self.name,
                    description=self.description,
                    parameters=types.Schema.model_validate(self.parameters),
                )
            ]
        )


class GeminiToolCaller:
    """Invoke Gemini and return the arguments of every call to one tool."""

    def __init__(self, settings: Settings) -> None:
        self._api_key = settings.gemini_api_key
        self._model = settings.gemini_model
        self._temperature = settings.generation_temperature
        self._timeout = settings.generation_timeout
        self._client: Optional[genai.Client] = None

    def _get_client(self) -> genai.Client:
        if self._client is not None:
            return self._client
        if not self._api_key:
            raise ConfigError("GEMINI_API_KEY is not configured")
        self._client = genai.Client(api_key=self._api_key)
        return self._client

    def call_tool(self, prompt: str, tool: ToolSpec, deadline: Optional[Deadline] = None) -> List[Dict[str, Any]]:
        client = self._get_client()
        timeout = io_timeout(deadline, self._timeout)
        config = types.GenerateContentConfig(
            temperature=self._temperature,
            tools=[tool.declaration()],
            tool_config=types.ToolConfig(
                function_calling_config=types.FunctionCallingConfig(
                    mode="ANY",
                    allowed_function_names=[tool.name],
                )
            ),
            automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
            http_options=types.HttpOptions(timeout=int(timeout * 1000)),
        )
        try:
            response = client.models.generate_content(
                model=self._model,
                contents=prompt,
                config=config,
            )
        except Exception as exc:  # network, quota and timeout failures
            LOGGER.error("Gemini %s call failed: %s", tool.name, exc)
            raise GenerationError(f"model call for {tool.name} failed") from exc

        calls = [call for call in (response.function_calls or []) if call.name == tool.name]
        LOGGER.debug("Gemini returned %s %s call(s)", len(calls), tool.name)
        return [dict(call.args or {}) for call in calls]
