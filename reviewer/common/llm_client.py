"""
Prompt invoker for the review bot.

Sends a single-turn prompt to Claude (served from Amazon Bedrock, or the
Anthropic API directly) with bounded retry, optionally declaring one tool
whose input schema is the structured output the caller wants back.

``PromptInvoker.invoke`` never raises: every failure resolves to an empty
``InvocationResult``.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .config import LLMConfig
from .exceptions import ConfigurationError, SerializationError
from .retry import RetryConfig, RetryExecutor, RetryResult

logger = logging.getLogger("reviewer.common.llm_client")

LANGUAGE_INSTRUCTION = "IMPORTANT: Entire response must be in the language with ISO code: {language}"


@dataclass
class JsonSchema:
    """Structured output the model may return through a tool call."""
    name: str
    description: str
    parameters: Dict[str, Any]


@dataclass
class ConversationTurn:
    """A single user message, optionally with a structured-output schema."""
    message: str
    json_schema: Optional[JsonSchema] = None


@dataclass(frozen=True)
class CorrelationIds:
    """Identifiers the service returned for tracing this request."""
    request_id: Optional[str] = None
    message_id: Optional[str] = None


@dataclass
class InvocationResult:
    """Normalized response text plus correlation identifiers."""
    text: str = ""
    ids: Optional[CorrelationIds] = None
    from_tool: bool = False  # text is a serialized tool-call input

    @property
    def is_empty(self) -> bool:
        return not self.text


def _create_client(config: LLMConfig):
    """Build the async SDK client for the configured provider.

    SDK-level retries are disabled; RetryExecutor owns the retry budget.
    """
    provider = (config.provider or "bedrock").lower()

    if provider == "bedrock":
        from anthropic import AsyncAnthropicBedrock

        return AsyncAnthropicBedrock(aws_region=config.aws_region, max_retries=0)

    if provider == "anthropic":
        if not config.anthropic_api_key:
            raise ConfigurationError("anthropic provider selected but ANTHROPIC_API_KEY is not set")
        from anthropic import AsyncAnthropic

        return AsyncAnthropic(api_key=config.anthropic_api_key, max_retries=0)

    raise ConfigurationError(f"Unsupported LLM provider: {config.provider}")


def serialize_tool_input(payload: Any) -> str:
    """Serialize a tool-call input the way the model emitted it (compact JSON).

    Raises:
        SerializationError: payload is not JSON-serializable
    """
    try:
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Tool input is not JSON-serializable: {e}") from e


class PromptInvoker:
    """Builds, sends and normalizes generation requests."""

    def __init__(
        self,
        config: Optional[LLMConfig] = None,
        client=None,
        retry: Optional[RetryExecutor] = None,
    ) -> None:
        self.config = config or LLMConfig()
        self._retry = retry or RetryExecutor(RetryConfig(max_retries=self.config.retries))
        self._client = client

        if self._client is None:
            try:
                self._client = _create_client(self.config)
            except ImportError:
                logger.warning("anthropic package not installed, LLM client unavailable")
            except Exception as e:
                logger.warning("Failed to initialize %s client: %s", self.config.provider, e)

    @property
    def is_available(self) -> bool:
        return self._client is not None

    async def chat(
        self,
        message: str,
        json_schema: Optional[JsonSchema] = None,
    ) -> InvocationResult:
        return await self.invoke(ConversationTurn(message=message, json_schema=json_schema))

    async def invoke(self, turn: ConversationTurn) -> InvocationResult:
        """Send ``turn`` and return the normalized response. Never raises."""
        try:
            return await self._invoke(turn)
        except Exception as e:
            logger.warning("Failed to chat: %s", e)
            return InvocationResult()

    async def _invoke(self, turn: ConversationTurn) -> InvocationResult:
        start = time.monotonic()
        if not turn.message:
            return InvocationResult()

        if not self.is_available:
            logger.warning("LLM client unavailable, skipping request")
            return InvocationResult()

        request = self.build_request(turn)

        if self.config.debug:
            logger.info("sending prompt: %s\n------------", request["messages"][0]["content"][0]["text"])
            if turn.json_schema:
                logger.info("Using JSON schema: %s", json.dumps(request["tools"][0]))

        outcome = await self._send(request)
        response = outcome.result if outcome.success else None
        if not outcome.success:
            logger.info(
                "response: %s, failed to send message to %s: %s",
                response, self.config.provider, outcome.error,
            )

        elapsed_ms = (time.monotonic() - start) * 1000
        logger.info(
            "%s sendMessage (including retries) response time: %d ms",
            self.config.provider, elapsed_ms,
        )

        result = self.normalize_response(response)
        if self.config.debug:
            logger.info("%s responses: %s\n-----------", self.config.provider, result.text)
        return result

    def build_request(self, turn: ConversationTurn) -> Dict[str, Any]:
        """Build Messages API keyword arguments for ``turn``."""
        instruction = LANGUAGE_INSTRUCTION.format(language=self.config.language)
        request: Dict[str, Any] = {
            "model": self.config.model,
            "messages": [
                {
                    "role": "user",
                    "content": [{"type": "text", "text": f"{instruction}\n\n{turn.message}"}],
                }
            ],
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
        }

        if turn.json_schema:
            request["tools"] = [
                {
                    "name": turn.json_schema.name,
                    "description": turn.json_schema.description,
                    "input_schema": turn.json_schema.parameters,
                }
            ]

        return request

    async def _send(self, request: Dict[str, Any]) -> RetryResult:
        return await self._retry.execute(
            lambda: self._client.messages.create(**request),
            max_retries=self.config.retries,
            operation_name=f"{self.config.provider} messages.create",
        )

    @staticmethod
    def normalize_response(response: Any) -> InvocationResult:
        """Collapse response content items into one text.

        Text items are concatenated in order; a tool_use item replaces
        everything accumulated so far with its serialized input.
        """
        if response is None:
            logger.warning("LLM response is null")
            return InvocationResult()

        ids = CorrelationIds(
            request_id=getattr(response, "_request_id", None),
            message_id=getattr(response, "id", None),
        )

        content: List[Any] = getattr(response, "content", None) or []
        if not content:
            logger.warning("LLM response has no message content")
            return InvocationResult(ids=ids)

        text = ""
        from_tool = False
        for item in content:
            item_type = getattr(item, "type", None)
            if item_type == "text":
                text += getattr(item, "text", "") or ""
            elif item_type == "tool_use":
                from_tool = True
                try:
                    text = serialize_tool_input(getattr(item, "input", None))
                except SerializationError as e:
                    logger.warning("Failed to parse tool use input as JSON: %s", e)
                    text = ""
                    from_tool = False

        return InvocationResult(text=text, ids=ids, from_tool=from_tool)
