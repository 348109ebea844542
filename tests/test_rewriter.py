"""
Semantic rewrite client tests - Ollama backend and remote HTTP client.
"""

import httpx
import ollama
import pytest
import requests
from unittest.mock import MagicMock, patch

from docvault.agents.rewriter import (
    OllamaRewriter,
    RemoteRewriter,
    UnconfiguredRewriter,
    build_rewrite_messages,
    get_rewriter,
)
from docvault.core.errors import RewriteError, RewriteTimeoutError, RewriteUnavailableError


def _chat_response(content):
    return {'message': {'role': 'assistant', 'content': content}}


class TestPrompt:

    def test_messages_carry_role_and_content(self):
        messages = build_rewrite_messages("Lawsuit Pending", "marketing")
        assert messages[0]['role'] == 'system'
        assert '"marketing"' in messages[1]['content']
        assert 'Original content: "Lawsuit Pending"' in messages[1]['content']
        assert "Respond with ONLY the masked content" in messages[1]['content']


class TestOllamaRewriter:

    def test_returns_trimmed_paraphrase(self):
        client = MagicMock()
        client.chat.return_value = _chat_response('  "The company faces a legal challenge."  ')
        rewriter = OllamaRewriter(model_name="test-model", client=client)

        result = rewriter.rewrite("Lawsuit Pending", "marketing")

        assert result == "The company faces a legal challenge."
        kwargs = client.chat.call_args.kwargs
        assert kwargs['model'] == "test-model"
        assert 'temperature' in kwargs['options']

    def test_empty_response_is_an_error(self):
        client = MagicMock()
        client.chat.return_value = _chat_response("   ")
        rewriter = OllamaRewriter(model_name="test-model", client=client)

        with pytest.raises(RewriteError):
            rewriter.rewrite("Lawsuit Pending", "marketing")

    def test_timeout(self):
        client = MagicMock()
        client.chat.side_effect = httpx.ReadTimeout("timed out")
        rewriter = OllamaRewriter(model_name="test-model", client=client)

        with pytest.raises(RewriteTimeoutError):
            rewriter.rewrite("x", "marketing")

    def test_unreachable(self):
        client = MagicMock()
        client.chat.side_effect = ConnectionError("refused")
        rewriter = OllamaRewriter(model_name="test-model", client=client)

        with pytest.raises(RewriteUnavailableError):
            rewriter.rewrite("x", "marketing")

    def test_model_error(self):
        client = MagicMock()
        client.chat.side_effect = ollama.ResponseError("model not found")
        rewriter = OllamaRewriter(model_name="test-model", client=client)

        with pytest.raises(RewriteError, match="model not found"):
            rewriter.rewrite("x", "marketing")

    @pytest.mark.parametrize("error", [
        httpx.ReadError("connection reset"),
        httpx.RemoteProtocolError("server disconnected"),
        ollama.RequestError("bad request"),
    ])
    def test_other_transport_failures_are_typed(self, error):
        client = MagicMock()
        client.chat.side_effect = error
        rewriter = OllamaRewriter(model_name="test-model", client=client)

        with pytest.raises(RewriteError):
            rewriter.rewrite("x", "marketing")

    def test_malformed_response(self):
        client = MagicMock()
        client.chat.return_value = {"done": True}
        rewriter = OllamaRewriter(model_name="test-model", client=client)

        with pytest.raises(RewriteError, match="malformed"):
            rewriter.rewrite("x", "marketing")

    def test_health(self):
        client = MagicMock()
        assert OllamaRewriter(model_name="m", client=client).is_healthy() is True
        client.list.side_effect = ConnectionError("down")
        assert OllamaRewriter(model_name="m", client=client).is_healthy() is False


class TestConfiguredRewriter:

    def test_unconfigured_fails_explicitly(self):
        with pytest.raises(RewriteUnavailableError):
            UnconfiguredRewriter().rewrite("x", "marketing")

    def test_disabled_service_gives_unconfigured_rewriter(self):
        with patch('docvault.core.config.REWRITE_ENABLED', False):
            assert isinstance(get_rewriter(), UnconfiguredRewriter)

    def test_blank_model_gives_unconfigured_rewriter(self):
        with patch('docvault.core.config.OLLAMA_MODEL', '  '):
            assert isinstance(get_rewriter(), UnconfiguredRewriter)

    def test_enabled_service_gives_ollama_rewriter(self):
        with patch('docvault.core.config.REWRITE_ENABLED', True), \
                patch('docvault.core.config.OLLAMA_MODEL', 'llama3.2'):
            assert isinstance(get_rewriter(), OllamaRewriter)


class TestRemoteRewriter:

    def _response(self, status_code, body):
        response = MagicMock()
        response.status_code = status_code
        response.json.return_value = body
        response.text = str(body)
        return response

    def test_posts_to_mask_content(self):
        session = MagicMock()
        session.post.return_value = self._response(200, {"masked": "A general legal matter."})
        rewriter = RemoteRewriter(base_url="http://api.test/", session=session)

        assert rewriter.rewrite("Lawsuit Pending", "marketing") == "A general legal matter."
        args, kwargs = session.post.call_args
        assert args[0] == "http://api.test/mask-content"
        assert kwargs['json'] == {"content": "Lawsuit Pending", "role": "marketing"}

    @pytest.mark.parametrize("status_code,error", [
        (503, RewriteUnavailableError),
        (504, RewriteTimeoutError),
        (502, RewriteError),
    ])
    def test_error_statuses(self, status_code, error):
        session = MagicMock()
        session.post.return_value = self._response(status_code, {"detail": "nope"})
        rewriter = RemoteRewriter(base_url="http://api.test", session=session)

        with pytest.raises(error):
            rewriter.rewrite("x", "marketing")

    def test_connection_failure(self):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("refused")
        with pytest.raises(RewriteUnavailableError):
            RemoteRewriter(base_url="http://api.test", session=session).rewrite("x", "marketing")

    def test_timeout(self):
        session = MagicMock()
        session.post.side_effect = requests.Timeout("slow")
        with pytest.raises(RewriteTimeoutError):
            RemoteRewriter(base_url="http://api.test", session=session).rewrite("x", "marketing")

    def test_empty_mask_is_an_error(self):
        session = MagicMock()
        session.post.return_value = self._response(200, {"masked": ""})
        with pytest.raises(RewriteError):
            RemoteRewriter(base_url="http://api.test", session=session).rewrite("x", "marketing")

    def test_non_json_body_is_an_error(self):
        response = MagicMock()
        response.status_code = 200
        response.text = "<html>proxy error</html>"
        response.json.side_effect = ValueError("Expecting value")
        session = MagicMock()
        session.post.return_value = response

        with pytest.raises(RewriteError, match="non-JSON"):
            RemoteRewriter(base_url="http://api.test", session=session).rewrite("x", "marketing")

    def test_non_object_body_is_an_error(self):
        session = MagicMock()
        session.post.return_value = self._response(200, ["masked"])
        with pytest.raises(RewriteError):
            RemoteRewriter(base_url="http://api.test", session=session).rewrite("x", "marketing")

    def test_other_request_failures_are_typed(self):
        session = MagicMock()
        session.post.side_effect = requests.exceptions.ChunkedEncodingError("broken stream")
        with pytest.raises(RewriteError):
            RemoteRewriter(base_url="http://api.test", session=session).rewrite("x", "marketing")

    def test_error_status_with_html_body(self):
        response = MagicMock()
        response.status_code = 502
        response.text = "Bad Gateway"
        response.json.side_effect = ValueError("Expecting value")
        session = MagicMock()
        session.post.return_value = response

        with pytest.raises(RewriteError, match="Bad Gateway"):
            RemoteRewriter(base_url="http://api.test", session=session).rewrite("x", "marketing")
