"""
Tests for the content oracle boundary: fence stripping, validation,
the single retry, and the tagged failure results.
"""

import asyncio

import pytest
from pydantic import BaseModel

from conftest import FakeAPIError, MockGeminiClient
from tools.errors import OracleCallFailed, OracleUnavailableError, SchemaValidationFailed
from tools.oracle import (
    OracleClient,
    OracleOk,
    OracleSchemaError,
    OracleUnavailable,
    describe_failure,
    strip_code_fences,
)


class Verdict(BaseModel):
    answer: str
    confidence: int = 0


def _oracle(responses, **kwargs):
    client = MockGeminiClient(responses)
    return OracleClient(client, limiter=None, retry_backoff=0, **kwargs), client


class TestStripCodeFences:

    def test_plain_json_unchanged(self):
        assert strip_code_fences('{"a": 1}') == '{"a": 1}'

    def test_json_fence_removed(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_bare_fence_removed(self):
        assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_surrounding_whitespace(self):
        assert strip_code_fences('  \n```json\n{"a": 1}\n```\n ') == '{"a": 1}'


class TestInvoke:

    def test_valid_response(self):
        async def run():
            oracle, client = _oracle(['{"answer": "yes", "confidence": 3}'])
            result = await oracle.invoke("prompt", Verdict, "unit")
            assert isinstance(result, OracleOk)
            assert result.ok
            assert result.value.answer == "yes"
            assert client.call_count == 1
        asyncio.run(run())

    def test_fenced_response_validates(self):
        async def run():
            oracle, _ = _oracle(['```json\n{"answer": "fenced"}\n```'])
            result = await oracle.invoke("prompt", Verdict, "unit")
            assert result.unwrap().answer == "fenced"
        asyncio.run(run())

    def test_requests_json_mime_type(self):
        async def run():
            oracle, client = _oracle(['{"answer": "x"}'], model_id="gemini-test")
            await oracle.invoke("the prompt", Verdict, "unit", temperature=0.1)
            call = client.calls[0]
            assert call["model"] == "gemini-test"
            assert call["contents"] == "the prompt"
            assert call["config"].response_mime_type == "application/json"
            assert call["config"].temperature == 0.1
        asyncio.run(run())

    def test_retries_once_then_succeeds(self):
        async def run():
            oracle, client = _oracle(["not json at all", '{"answer": "second"}'])
            result = await oracle.invoke("prompt", Verdict, "unit")
            assert result.ok
            assert result.value.answer == "second"
            assert client.call_count == 2
        asyncio.run(run())

    def test_schema_failure_after_two_attempts(self):
        async def run():
            oracle, client = _oracle(['{"wrong": 1}', '{"still": "wrong"}', '{"answer": "too late"}'])
            result = await oracle.invoke("prompt", Verdict, "unit_site")
            assert isinstance(result, OracleSchemaError)
            assert not result.ok
            assert client.call_count == 2
            assert "unit_site" in result.message
            assert "after 2 attempts" in result.message
            assert result.raw_text == '{"still": "wrong"}'
        asyncio.run(run())

    def test_empty_response_is_schema_failure(self):
        async def run():
            oracle, _ = _oracle(["", "   "])
            result = await oracle.invoke("prompt", Verdict, "unit")
            assert isinstance(result, OracleSchemaError)
        asyncio.run(run())

    def test_check_rejection_counts_as_schema_failure(self):
        def no_maybes(value):
            return "answer may not be maybe" if value.answer == "maybe" else None

        async def run():
            oracle, client = _oracle(['{"answer": "maybe"}', '{"answer": "maybe"}'])
            result = await oracle.invoke("prompt", Verdict, "unit", check=no_maybes)
            assert isinstance(result, OracleSchemaError)
            assert "answer may not be maybe" in result.message
            assert client.call_count == 2
        asyncio.run(run())

    def test_transport_errors_become_unavailable(self):
        async def run():
            oracle, client = _oracle([ConnectionError("reset"), TimeoutError("slow")])
            result = await oracle.invoke("prompt", Verdict, "unit")
            assert isinstance(result, OracleUnavailable)
            assert client.call_count == 2
        asyncio.run(run())

    def test_auth_failure_is_not_retried(self):
        async def run():
            oracle, client = _oracle([FakeAPIError(401, "bad key"), '{"answer": "never"}'])
            result = await oracle.invoke("prompt", Verdict, "unit")
            assert isinstance(result, OracleUnavailable)
            assert client.call_count == 1
            assert "credentials" in result.message
        asyncio.run(run())

    def test_no_client_is_unavailable(self):
        async def run():
            oracle = OracleClient(None)
            assert not oracle.available
            result = await oracle.invoke("prompt", Verdict, "unit")
            assert isinstance(result, OracleUnavailable)
        asyncio.run(run())

    def test_limiter_acquired_per_attempt(self, mock_oracle_limiter):
        async def run():
            client = MockGeminiClient(["bad", '{"answer": "ok"}'])
            oracle = OracleClient(client, limiter=mock_oracle_limiter, retry_backoff=0)
            await oracle.invoke("prompt", Verdict, "unit")
            assert mock_oracle_limiter.acquire.await_count == 2
            mock_oracle_limiter.acquire.assert_awaited_with("unit")
        asyncio.run(run())


class TestUnwrap:

    def test_schema_error_raises_schema_validation_failed(self):
        with pytest.raises(SchemaValidationFailed) as exc:
            OracleSchemaError("site", "broken").unwrap()
        assert exc.value.call_site == "site"
        assert isinstance(exc.value, OracleCallFailed)

    def test_unavailable_raises_unavailable_error(self):
        with pytest.raises(OracleUnavailableError):
            OracleUnavailable("site", "down").unwrap()


class TestDescribeFailure:

    def test_unavailable_narration(self):
        assert "oracle is silent" in describe_failure(OracleUnavailable("s", "m"))
        assert "oracle is silent" in describe_failure(OracleUnavailableError("s", "m"))

    def test_schema_narration(self):
        assert "hazy" in describe_failure(OracleSchemaError("s", "m"))
        assert "hazy" in describe_failure(SchemaValidationFailed("s", "m"))
