"""Tests for the Ollama client and the model-output parsing boundary."""

import json
from datetime import date
from decimal import Decimal

import httpx
import pytest

from ledger_chat.config import LLMConfig
from ledger_chat.errors import (
    LLMAuthError,
    LLMRateLimitError,
    LLMTimeoutError,
    LLMUnavailableError,
    MalformedResponse,
)
from ledger_chat.llm import (
    OllamaClient,
    parse_chunks_payload,
    parse_correction_payload,
    parse_json_payload,
    parse_transactions_payload,
)
from ledger_chat.llm.client import is_simple_request, strip_think_tags
from ledger_chat.llm.prompts import COUNT_CORRECTION_PROMPT, get_system_prompt
from ledger_chat.schemas.transaction import UNKNOWN_DATE, Direction

REFERENCE = date(2025, 4, 14)


def _chat_body(content: str) -> dict:
    return {"model": "x", "message": {"role": "assistant", "content": content}, "done": True}


def _client(handler, **overrides) -> OllamaClient:
    llm_config = LLMConfig(enabled=True, **overrides)
    return OllamaClient(llm_config, transport=httpx.MockTransport(handler))


class TestParseJsonPayload:
    """Tests for the JSON recovery helpers."""

    def test_plain_object(self):
        assert parse_json_payload('{"a": 1}') == {"a": 1}

    def test_code_fence(self):
        assert parse_json_payload('```json\n{"a": 1}\n```') == {"a": 1}

    def test_prose_around_json(self):
        """Chatty models wrap the answer in text."""
        content = 'Sure! Here is the result: {"a": 1} Let me know if you need more.'
        assert parse_json_payload(content) == {"a": 1}

    def test_python_literals_and_trailing_commas(self):
        content = '{"a": None, "b": [1, 2,], "c": True,}'
        assert parse_json_payload(content) == {"a": None, "b": [1, 2], "c": True}

    def test_unquoted_keys(self):
        assert parse_json_payload("{amount: 5}") == {"amount": 5}

    def test_string_values_left_alone(self):
        """Repairs never rewrite text inside string values."""
        content = '{"description": "Payment, ref: 123", "note": "True, None", "tags": ["a",],}'
        assert parse_json_payload(content) == {
            "description": "Payment, ref: 123",
            "note": "True, None",
            "tags": ["a"],
        }

    def test_unquoted_key_after_string_value(self):
        assert parse_json_payload('{"description": "Rent, May", amount: 5}') == {
            "description": "Rent, May",
            "amount": 5,
        }

    @pytest.mark.parametrize("content", [None, "", "   ", "no json here", '"just a string"'])
    def test_unrecoverable(self, content):
        with pytest.raises(MalformedResponse):
            parse_json_payload(content)


class TestParseTransactionsPayload:
    """Tests for record validation."""

    def test_wrapped_list(self):
        content = json.dumps(
            {
                "transactions": [
                    {
                        "date": "2025-04-01",
                        "description": "Rent",
                        "amount": "$1,234.50",
                        "direction": "out",
                        "type": "Check",
                    }
                ]
            }
        )
        result = parse_transactions_payload(content, REFERENCE)

        assert len(result) == 1
        assert result[0].amount == Decimal("1234.50")
        assert result[0].direction == Direction.OUT
        assert result[0].type == "Check"
        assert result[0].currency == "USD"

    def test_bare_list_and_single_object(self):
        bare = parse_transactions_payload('[{"amount": 5, "description": "Tea"}]', REFERENCE)
        single = parse_transactions_payload('{"amount": 5, "description": "Tea"}', REFERENCE)
        assert len(bare) == len(single) == 1

    def test_invalid_records_dropped(self):
        """Zero, negative and unparsable amounts never become transactions."""
        content = '[{"amount": 0}, {"amount": -4}, {"amount": "abc"}, {"amount": true}, "x"]'
        assert parse_transactions_payload(content, REFERENCE) == []

    def test_nothing_invented(self):
        """Unknown dates and directions stay unknown."""
        result = parse_transactions_payload(
            '[{"amount": 9.99, "date": "someday", "direction": "sideways"}]', REFERENCE
        )
        txn = result[0]
        assert txn.date == UNKNOWN_DATE
        assert txn.direction == Direction.UNKNOWN
        assert txn.description == "unknown"

    def test_description_with_colon_survives_repair(self):
        content = (
            '{"transactions": [{"date": "2025-04-10", "description": "Payment, ref: 123", '
            '"amount": 12.5, "direction": "OUT"},]}'
        )
        (txn,) = parse_transactions_payload(content, REFERENCE)
        assert txn.description == "Payment, ref: 123"
        assert txn.amount == Decimal("12.50")

    def test_relative_date_resolved(self):
        result = parse_transactions_payload('[{"amount": 3, "date": "yesterday"}]', REFERENCE)
        assert result[0].date == "2025-04-13"

    def test_categories_list_accepted(self):
        result = parse_transactions_payload(
            '[{"amount": 3, "categories": ["PayPal"]}]', REFERENCE
        )
        assert result[0].category == "PayPal"

    def test_missing_transactions_key(self):
        with pytest.raises(MalformedResponse):
            parse_transactions_payload('{"items": []}', REFERENCE)


class TestParseOtherPayloads:
    """Tests for the chunking and correction answers."""

    def test_chunks_filtered(self):
        content = '{"transaction_chunks": ["Apr 1\\n$5", "", "   ", 7, " Apr 2\\n$6 "]}'
        assert parse_chunks_payload(content) == ["Apr 1\n$5", "Apr 2\n$6"]

    def test_chunks_missing_key(self):
        with pytest.raises(MalformedResponse):
            parse_chunks_payload('{"chunks": []}')

    def test_correction_payload(self):
        payload = parse_correction_payload(
            '{"correction_possible": true, "field_updates": {"amount": 45}}'
        )
        assert payload.correction_possible
        assert payload.field_updates == {"amount": 45}

    def test_legacy_correction_shape(self):
        payload = parse_correction_payload('{"target_field": "amount", "new_value": "45"}')
        assert payload.correction_possible
        assert payload.field_updates == {"amount": "45"}

    def test_correction_unknown_field(self):
        payload = parse_correction_payload('{"target_field": "unknown", "new_value": null}')
        assert not payload.correction_possible
        assert payload.field_updates == {}

    def test_correction_not_object(self):
        with pytest.raises(MalformedResponse):
            parse_correction_payload("[1, 2]")


class TestHelpers:
    """Tests for client-side text helpers and prompts."""

    def test_strip_think_tags(self):
        assert strip_think_tags("<think>step 1\nstep 2</think>\nHello") == "Hello"
        assert strip_think_tags("") == ""

    def test_is_simple_request(self):
        assert is_simple_request("I spent $20 at Target")
        assert not is_simple_request("$5 coffee and $7 lunch")
        assert not is_simple_request("line one\nline two")

    def test_system_prompt_carries_date(self):
        assert "2025-04-14" in get_system_prompt("2025-04-14")

    def test_count_correction_prompt(self):
        text = COUNT_CORRECTION_PROMPT.format_text("original paste", "there were 3", 3)
        assert "original paste" in text
        assert "there were 3" in text
        assert "3" in text


class TestOllamaClient:
    """Tests for OllamaClient against a mock transport."""

    @pytest.mark.asyncio
    async def test_chat_returns_content(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json=_chat_body("<think>hmm</think>Hi there"))

        async with _client(handler) as client:
            reply = await client.chat([{"role": "user", "content": "hello"}])

        assert reply == "Hi there"
        assert seen[0]["model"] == "llama3:latest"
        assert seen[0]["stream"] is False
        assert "format" not in seen[0]

    @pytest.mark.asyncio
    async def test_disabled_client_raises(self):
        client = OllamaClient(LLMConfig(enabled=False))
        try:
            with pytest.raises(LLMUnavailableError):
                await client.chat([{"role": "user", "content": "hello"}])
            assert await client.is_available() is False
        finally:
            await client.aclose()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,error",
        [
            (401, LLMAuthError),
            (403, LLMAuthError),
            (429, LLMRateLimitError),
            (404, LLMUnavailableError),
            (500, LLMUnavailableError),
        ],
    )
    async def test_status_mapping(self, status, error):
        """HTTP failures map onto typed upstream errors."""

        def handler(request):
            return httpx.Response(status, json={"error": "nope"})

        async with _client(handler) as client:
            with pytest.raises(error) as exc_info:
                await client.chat([{"role": "user", "content": "hi"}])

        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with _client(handler) as client:
            with pytest.raises(LLMTimeoutError):
                await client.chat([{"role": "user", "content": "hi"}])

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(LLMUnavailableError):
                await client.chat([{"role": "user", "content": "hi"}])

    @pytest.mark.asyncio
    async def test_empty_reply_is_malformed(self):
        def handler(request):
            return httpx.Response(200, json=_chat_body("<think>only thoughts</think>"))

        async with _client(handler) as client:
            with pytest.raises(MalformedResponse):
                await client.chat([{"role": "user", "content": "hi"}])

    @pytest.mark.asyncio
    async def test_auth_header_forms(self):
        headers = []

        def handler(request):
            headers.append(request.headers)
            return httpx.Response(200, json=_chat_body("ok"))

        async with _client(handler, auth_header="X-Api-Key: abc") as client:
            await client.chat([{"role": "user", "content": "hi"}])
        async with _client(handler, auth_header="Bearer tok") as client:
            await client.chat([{"role": "user", "content": "hi"}])

        assert headers[0]["X-Api-Key"] == "abc"
        assert headers[1]["Authorization"] == "Bearer tok"

    @pytest.mark.asyncio
    async def test_generate_json_falls_back_to_larger_model(self):
        """Unparseable output from the fast model triggers one fallback call."""
        models = []

        def handler(request):
            body = json.loads(request.content)
            models.append(body["model"])
            assert body["format"] == "json"
            if body["model"] == "llama3:latest":
                return httpx.Response(200, json=_chat_body("I cannot do that"))
            return httpx.Response(200, json=_chat_body('{"transactions": []}'))

        async with _client(handler) as client:
            content = await client.generate_json("extract", "system")

        assert content == '{"transactions": []}'
        assert models == ["llama3:latest", "deepseek-r1:8b"]

    @pytest.mark.asyncio
    async def test_generate_json_force_heavy(self):
        models = []

        def handler(request):
            models.append(json.loads(request.content)["model"])
            return httpx.Response(200, json=_chat_body("{}"))

        async with _client(handler) as client:
            await client.generate_json("extract", force_heavy=True)

        assert models == ["deepseek-r1:8b"]

    @pytest.mark.asyncio
    async def test_generate_json_all_attempts_malformed(self):
        def handler(request):
            return httpx.Response(200, json=_chat_body("still not json"))

        async with _client(handler) as client:
            with pytest.raises(MalformedResponse):
                await client.generate_json("extract")

    @pytest.mark.asyncio
    async def test_generate_json_auth_error_not_retried(self):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(401)

        async with _client(handler) as client:
            with pytest.raises(LLMAuthError):
                await client.generate_json("extract")

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_is_available(self):
        def handler(request):
            assert request.url.path == "/api/tags"
            return httpx.Response(200, json={"models": [{"name": "llama3:latest"}]})

        async with _client(handler) as client:
            assert await client.is_available() is True

    @pytest.mark.asyncio
    async def test_is_available_missing_model(self):
        def handler(request):
            return httpx.Response(200, json={"models": [{"name": "other:7b"}]})

        async with _client(handler) as client:
            assert await client.is_available() is False
