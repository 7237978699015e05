"""
HTTP backend tests.

Drives HttpInferenceBackend against a local aiohttp server speaking the
OpenAI-compatible routes.
"""

import asyncio

from aiohttp import test_utils, web

from quorum.foundation.backend import BackendConfig, HttpInferenceBackend
from quorum.foundation.types import ErrorCode


def serve(routes, scenario, **config):
    """Run `scenario(backend)` against an app serving `routes`."""
    async def run():
        app = web.Application()
        app.add_routes(routes)
        async with test_utils.TestServer(app) as server:
            backend = HttpInferenceBackend(BackendConfig(
                base_url=str(server.make_url("/v1")),
                api_key="secret",
                **config,
            ))
            try:
                return await scenario(backend)
            finally:
                await backend.close()

    return asyncio.run(run())


def status_route(status):
    async def handler(request):
        return web.Response(status=status, text="upstream said no")
    return [web.post("/v1/chat/completions", handler)]


class TestChat:
    """Tests for the chat completions route."""

    def setup_method(self):
        """Set up test fixtures."""
        self.seen = []

        async def handler(request):
            self.seen.append((dict(request.headers), await request.json()))
            return web.json_response({
                "choices": [{"message": {"role": "assistant", "content": "Paris."}}],
                "usage": {"prompt_tokens": 12, "completion_tokens": 3},
            })

        self.routes = [web.post("/v1/chat/completions", handler)]

    def test_prompt_and_system_message(self):
        """Test payload shape and parsed text."""
        async def scenario(backend):
            return await backend.invoke("llama-3.1-8b-instruct", {
                "prompt": "Capital of France?",
                "system_prompt": "Answer briefly.",
                "max_tokens": 64,
                "temperature": 0.2,
                "top_k": None,
            })

        result = serve(self.routes, scenario)

        assert result.unwrap().text == "Paris."
        assert result.unwrap().usage == {"prompt_tokens": 12, "completion_tokens": 3}

        headers, payload = self.seen[0]
        assert headers["Authorization"] == "Bearer secret"
        assert payload["model"] == "llama-3.1-8b-instruct"
        assert payload["messages"] == [
            {"role": "system", "content": "Answer briefly."},
            {"role": "user", "content": "Capital of France?"},
        ]
        assert payload["max_tokens"] == 64
        assert payload["temperature"] == 0.2
        assert "top_k" not in payload

    def test_messages_pass_through(self):
        """Test that explicit messages are sent unchanged."""
        messages = [{"role": "user", "content": "hi"}]

        async def scenario(backend):
            return await backend.invoke("m", {"messages": messages})

        assert serve(self.routes, scenario).is_ok()
        assert self.seen[0][1]["messages"] == messages

    def test_usage_stats(self):
        """Test token and request counters across calls."""
        async def scenario(backend):
            await backend.invoke("m", {"prompt": "one"})
            await backend.invoke("m", {"prompt": "two"})
            return backend.get_usage_stats()

        stats = serve(self.routes, scenario)

        assert stats["total_requests"] == 2
        assert stats["failed_requests"] == 0
        assert stats["total_prompt_tokens"] == 24
        assert stats["total_completion_tokens"] == 6
        assert stats["total_tokens"] == 30
        assert stats["success_rate"] == 1.0


class TestEmbeddings:
    """Tests for the embeddings route."""

    def test_rows_sorted_by_index(self):
        """Test that out-of-order rows come back in input order."""
        async def handler(request):
            body = await request.json()
            assert body["input"] == ["a", "b"]
            return web.json_response({"data": [
                {"index": 1, "embedding": [0.0, 1.0]},
                {"index": 0, "embedding": [1.0, 0.0]},
            ]})

        async def scenario(backend):
            return await backend.invoke("bge-large-en-v1.5", {"input": ["a", "b"]})

        result = serve([web.post("/v1/embeddings", handler)], scenario)
        assert result.unwrap().embeddings == [[1.0, 0.0], [0.0, 1.0]]

    def test_single_string_input(self):
        """Test that a bare string is sent as a one-item list."""
        async def handler(request):
            body = await request.json()
            return web.json_response({"data": [
                {"index": i, "embedding": [float(i)]} for i, _ in enumerate(body["input"])
            ]})

        async def scenario(backend):
            return await backend.invoke("m", {"input": "solo"})

        result = serve([web.post("/v1/embeddings", handler)], scenario)
        assert result.unwrap().embeddings == [[0.0]]


class TestTranscription:
    """Tests for the transcription route."""

    def test_multipart_fields(self):
        """Test the form upload and parsed segments."""
        seen = {}

        async def handler(request):
            form = await request.post()
            seen["audio"] = form["file"].file.read()
            seen["filename"] = form["file"].filename
            seen["model"] = form["model"]
            seen["language"] = form["language"]
            seen["temperature"] = form["temperature"]
            return web.json_response({
                "text": "hello world",
                "segments": [{"text": "hello world", "avg_logprob": -0.2}],
            })

        async def scenario(backend):
            return await backend.invoke("whisper-tiny-en", {
                "audio": b"RIFF....WAVE",
                "language": "en",
                "temperature": 0.3,
            })

        result = serve([web.post("/v1/audio/transcriptions", handler)], scenario)

        output = result.unwrap()
        assert output.text == "hello world"
        assert output.segments[0]["avg_logprob"] == -0.2
        assert seen == {
            "audio": b"RIFF....WAVE",
            "filename": "audio.wav",
            "model": "whisper-tiny-en",
            "language": "en",
            "temperature": "0.3",
        }


class TestFailures:
    """Tests for mapping transport failures to error codes."""

    def call(self, routes, **config):
        async def scenario(backend):
            result = await backend.invoke("m", {"prompt": "q"})
            return result, backend.get_usage_stats()
        return serve(routes, scenario, **config)

    def test_status_codes(self):
        """Test HTTP status to error code mapping."""
        expected = {
            429: ErrorCode.RATE_LIMITED,
            503: ErrorCode.SERVICE_UNAVAILABLE,
            504: ErrorCode.TIMEOUT,
            500: ErrorCode.INVOCATION_FAILED,
        }
        for status, code in expected.items():
            result, stats = self.call(status_route(status))
            error = result.unwrap_err()
            assert error.code == code
            assert error.details["status"] == status
            assert error.details["response"] == "upstream said no"
            assert stats["failed_requests"] == 1

    def test_timeout(self):
        """Test that a slow endpoint becomes TIMEOUT."""
        async def handler(request):
            await asyncio.sleep(0.5)
            return web.json_response({"choices": []})

        result, stats = self.call([web.post("/v1/chat/completions", handler)], timeout=0.05)

        assert result.unwrap_err().code == ErrorCode.TIMEOUT
        assert stats["success_rate"] == 0.0

    def test_unreadable_body(self):
        """Test that a non-JSON 200 becomes PARSE_FAILED."""
        async def handler(request):
            return web.Response(text="<html>gateway</html>", content_type="text/html")

        result, stats = self.call([web.post("/v1/chat/completions", handler)])

        assert result.unwrap_err().code == ErrorCode.PARSE_FAILED
        assert stats["failed_requests"] == 1

    def test_connection_refused(self):
        """Test that an unreachable endpoint becomes CONNECTION_ERROR."""
        async def scenario():
            backend = HttpInferenceBackend(BackendConfig(base_url="http://127.0.0.1:1/v1", timeout=5))
            try:
                return await backend.invoke("m", {"prompt": "q"})
            finally:
                await backend.close()

        result = asyncio.run(scenario())
        assert result.unwrap_err().code == ErrorCode.CONNECTION_ERROR

    def test_missing_parameters(self):
        """Test that unroutable parameters never reach the network."""
        async def scenario(backend):
            result = await backend.invoke("m", {"max_tokens": 5})
            return result, backend.get_usage_stats()

        result, stats = serve([], scenario)

        assert result.unwrap_err().code == ErrorCode.INVALID_INPUT
        assert result.unwrap_err().details == {"keys": ["max_tokens"]}
        assert stats["total_requests"] == 0
