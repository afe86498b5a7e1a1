"""Tests for PromptInvoker request building and response normalization."""

import json
import logging
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

import pytest

from reviewer.common.config import LLMConfig
from reviewer.common.llm_client import (
    ConversationTurn,
    JsonSchema,
    PromptInvoker,
    serialize_tool_input,
)
from reviewer.common.exceptions import SerializationError
from reviewer.common.retry import RetryConfig, RetryExecutor


def text_block(text):
    return SimpleNamespace(type="text", text=text)


def tool_block(payload):
    return SimpleNamespace(type="tool_use", id="toolu_1", name="review", input=payload)


def make_response(*blocks, message_id="msg_123", request_id="req_456"):
    return SimpleNamespace(id=message_id, _request_id=request_id, content=list(blocks))


def make_invoker(create, retries=2, **config_kwargs):
    client = Mock()
    client.messages.create = create
    config = LLMConfig(retries=retries, **config_kwargs)
    retry = RetryExecutor(RetryConfig(max_retries=retries, jitter=False), sleep=AsyncMock())
    return PromptInvoker(config, client=client, retry=retry)


REVIEW_SCHEMA = JsonSchema(
    name="review",
    description="Structured review comments",
    parameters={"type": "object", "properties": {"a": {"type": "integer"}}},
)


class TestPromptInvokerInit:
    def test_unsupported_provider_logs_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="reviewer.common.llm_client"):
            invoker = PromptInvoker(LLMConfig(provider="unsupported_xyz"))
        assert not invoker.is_available
        assert "Unsupported" in caplog.text

    def test_missing_anthropic_key_leaves_client_unavailable(self, caplog):
        with caplog.at_level(logging.WARNING, logger="reviewer.common.llm_client"):
            invoker = PromptInvoker(LLMConfig(provider="anthropic"))
        assert not invoker.is_available
        assert "ANTHROPIC_API_KEY" in caplog.text

    @pytest.mark.asyncio
    async def test_unavailable_client_returns_empty_result(self):
        invoker = PromptInvoker(LLMConfig(provider="unsupported_xyz"))
        result = await invoker.chat("Review this diff")
        assert result.text == ""
        assert result.ids is None


class TestBuildRequest:
    def test_prepends_language_instruction(self):
        invoker = make_invoker(AsyncMock(), language="ko-KR")
        request = invoker.build_request(ConversationTurn(message="Review this"))

        text = request["messages"][0]["content"][0]["text"]
        assert text == (
            "IMPORTANT: Entire response must be in the language with ISO code: ko-KR\n\nReview this"
        )
        assert request["messages"][0]["role"] == "user"

    def test_deterministic_generation_parameters(self):
        invoker = make_invoker(AsyncMock(), model="anthropic.test-model")
        request = invoker.build_request(ConversationTurn(message="hi"))

        assert request["model"] == "anthropic.test-model"
        assert request["temperature"] == 0
        assert request["max_tokens"] == 4096
        assert "tools" not in request

    def test_schema_declares_exactly_one_tool(self):
        invoker = make_invoker(AsyncMock())
        request = invoker.build_request(ConversationTurn(message="hi", json_schema=REVIEW_SCHEMA))

        assert request["tools"] == [
            {
                "name": "review",
                "description": "Structured review comments",
                "input_schema": REVIEW_SCHEMA.parameters,
            }
        ]
        assert "tool_choice" not in request


class TestInvoke:
    @pytest.mark.asyncio
    async def test_empty_message_makes_no_calls(self):
        create = AsyncMock()
        invoker = make_invoker(create)

        result = await invoker.invoke(ConversationTurn(message=""))

        assert result.text == ""
        assert result.ids is None
        create.assert_not_called()

    @pytest.mark.asyncio
    async def test_text_items_concatenated_in_order(self):
        create = AsyncMock(return_value=make_response(
            text_block("Looks "), text_block("good"), text_block("!")
        ))
        invoker = make_invoker(create)

        result = await invoker.chat("Review this")

        assert result.text == "Looks good!"
        assert result.from_tool is False

    @pytest.mark.asyncio
    async def test_tool_call_replaces_preceding_text(self):
        create = AsyncMock(return_value=make_response(
            text_block("Here is the JSON:"), tool_block({"a": 1})
        ))
        invoker = make_invoker(create)

        result = await invoker.chat("Explain X", REVIEW_SCHEMA)

        assert result.text == '{"a":1}'
        assert result.from_tool is True
        kwargs = create.await_args.kwargs
        assert kwargs["tools"][0]["name"] == "review"

    @pytest.mark.asyncio
    async def test_text_after_tool_call_is_appended(self):
        create = AsyncMock(return_value=make_response(tool_block({"a": 1}), text_block(" done")))
        invoker = make_invoker(create)

        result = await invoker.chat("Explain X", REVIEW_SCHEMA)

        assert result.text == '{"a":1} done'

    @pytest.mark.asyncio
    async def test_last_tool_call_wins(self):
        create = AsyncMock(return_value=make_response(tool_block({"a": 1}), tool_block({"a": 2})))
        invoker = make_invoker(create)

        result = await invoker.chat("Explain X", REVIEW_SCHEMA)

        assert json.loads(result.text) == {"a": 2}

    @pytest.mark.asyncio
    async def test_unserializable_tool_input_yields_empty_text(self):
        create = AsyncMock(return_value=make_response(text_block("prefix"), tool_block({"a": object()})))
        invoker = make_invoker(create)

        result = await invoker.chat("Explain X", REVIEW_SCHEMA)

        assert result.text == ""
        assert result.from_tool is False

    @pytest.mark.asyncio
    async def test_correlation_ids_copied(self):
        create = AsyncMock(return_value=make_response(text_block("ok")))
        invoker = make_invoker(create)

        result = await invoker.chat("Review this")

        assert result.ids.request_id == "req_456"
        assert result.ids.message_id == "msg_123"

    @pytest.mark.asyncio
    async def test_no_content_yields_empty_text(self):
        create = AsyncMock(return_value=make_response())
        invoker = make_invoker(create)

        result = await invoker.chat("Review this")

        assert result.text == ""

    @pytest.mark.asyncio
    async def test_retries_transient_failures(self):
        create = AsyncMock(side_effect=[ConnectionError("throttled"), make_response(text_block("ok"))])
        invoker = make_invoker(create, retries=2)

        result = await invoker.chat("Review this")

        assert result.text == "ok"
        assert create.await_count == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_never_raise(self):
        create = AsyncMock(side_effect=ConnectionError("down"))
        invoker = make_invoker(create, retries=2)

        result = await invoker.chat("Review this")

        assert result.text == ""
        assert result.ids is None
        assert create.await_count == 3

    @pytest.mark.asyncio
    async def test_unexpected_internal_error_is_contained(self):
        invoker = make_invoker(AsyncMock())
        with patch.object(invoker, "build_request", side_effect=RuntimeError("boom")):
            result = await invoker.chat("Review this")
        assert result.text == ""
        assert result.ids is None

    @pytest.mark.asyncio
    async def test_timing_always_logged(self, caplog):
        invoker = make_invoker(AsyncMock(return_value=make_response(text_block("ok"))))
        with caplog.at_level(logging.INFO, logger="reviewer.common.llm_client"):
            await invoker.chat("Review this")
        assert "response time" in caplog.text
        assert "sending prompt" not in caplog.text

    @pytest.mark.asyncio
    async def test_debug_logs_prompt_and_response(self, caplog):
        invoker = make_invoker(AsyncMock(return_value=make_response(text_block("ok"))), debug=True)
        with caplog.at_level(logging.INFO, logger="reviewer.common.llm_client"):
            await invoker.chat("Review this", REVIEW_SCHEMA)
        assert "sending prompt" in caplog.text
        assert "Using JSON schema" in caplog.text
        assert "responses: ok" in caplog.text


class TestSerializeToolInput:
    def test_compact_separators(self):
        assert serialize_tool_input({"a": 1, "b": [1, 2]}) == '{"a":1,"b":[1,2]}'

    def test_non_ascii_preserved(self):
        assert serialize_tool_input({"msg": "좋아요"}) == '{"msg":"좋아요"}'

    def test_unserializable_raises(self):
        with pytest.raises(SerializationError):
            serialize_tool_input({"a": {1, 2}})
