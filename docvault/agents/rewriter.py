"""
Semantic rewrite service clients.

OllamaRewriter talks to a local or remote Ollama model and is what the HTTP
route uses. RemoteRewriter calls that route and is what a viewer client uses
when it runs apart from the server.
"""

from abc import ABC, abstractmethod
from datetime import datetime

import httpx
import ollama
import requests

from ..core import config
from ..core.errors import RewriteError, RewriteTimeoutError, RewriteUnavailableError
from util.logging import logger

REWRITE_SYSTEM_PROMPT = (
    "You are a semantic content masking system for confidential business documents. "
    "Transform sensitive content into a safe, professional alternative that preserves "
    "meaning but removes specifics."
)

REWRITE_PROMPT_TEMPLATE = """The result must be suitable for the "{role}" role to understand the general concept without sensitive details.

Original content: "{content}"

Rules:
- Keep it brief (1-2 sentences max)
- Maintain professional tone
- Remove all specific numbers, names, and sensitive details
- Use generic but truthful alternatives
- If it's a risk, describe it as a general business challenge
- If it's financial, describe it in general terms

Respond with ONLY the masked content, no explanation."""


def build_rewrite_messages(content: str, role: str):
    return [
        {'role': 'system', 'content': REWRITE_SYSTEM_PROMPT},
        {'role': 'user', 'content': REWRITE_PROMPT_TEMPLATE.format(role=role, content=content)},
    ]


class BaseRewriter(ABC):
    """Turns a raw value into a de-identified paraphrase for a role."""

    @abstractmethod
    def rewrite(self, content: str, role: str) -> str:
        """Return the paraphrase or raise RewriteError."""


class UnconfiguredRewriter(BaseRewriter):
    """Stands in when the rewrite service is disabled; always fails explicitly."""

    def rewrite(self, content: str, role: str) -> str:
        raise RewriteUnavailableError("Semantic rewrite service is not configured")


class OllamaRewriter(BaseRewriter):

    def __init__(self, model_name: str = None, host: str = None, timeout: float = None,
                 temperature: float = None, client: ollama.Client = None):
        self.model_name = model_name or config.OLLAMA_MODEL
        self.temperature = config.REWRITE_TEMPERATURE if temperature is None else temperature
        self.client = client or ollama.Client(
            host=host or config.OLLAMA_HOST,
            timeout=timeout or config.REWRITE_TIMEOUT_SEC,
        )

    def rewrite(self, content: str, role: str) -> str:
        start_time = datetime.now()
        try:
            response = self.client.chat(
                model=self.model_name,
                messages=build_rewrite_messages(content, role),
                options={'temperature': self.temperature},
            )
        except httpx.TimeoutException as e:
            logger.log_rewrite(role, self.model_name, "timeout")
            raise RewriteTimeoutError(f"Rewrite model {self.model_name} timed out") from e
        except (ConnectionError, httpx.ConnectError) as e:
            logger.log_rewrite(role, self.model_name, "unavailable")
            raise RewriteUnavailableError(f"Rewrite service unreachable: {e}") from e
        except ollama.ResponseError as e:
            logger.log_rewrite(role, self.model_name, "failed")
            raise RewriteError(f"Rewrite model error: {e.error}") from e
        except (httpx.HTTPError, ollama.RequestError) as e:
            logger.log_rewrite(role, self.model_name, "failed")
            raise RewriteError(f"Rewrite request failed: {e}") from e

        try:
            masked = (response['message']['content'] or '').strip().strip('"').strip()
        except (KeyError, TypeError, AttributeError) as e:
            logger.log_rewrite(role, self.model_name, "malformed")
            raise RewriteError("Rewrite model returned a malformed response") from e
        processing_time = int((datetime.now() - start_time).total_seconds() * 1000)

        if not masked:
            logger.log_rewrite(role, self.model_name, "empty", processing_time)
            raise RewriteError("Rewrite model returned an empty paraphrase")

        logger.log_rewrite(role, self.model_name, "success", processing_time)
        return masked

    def is_healthy(self) -> bool:
        """Check if the service is reachable."""
        try:
            self.client.list()
            return True
        except Exception:
            return False


class RemoteRewriter(BaseRewriter):
    """Calls the /mask-content route of a running docvault API."""

    def __init__(self, base_url: str = None, timeout: float = None, session: requests.Session = None):
        self.base_url = (base_url or config.API_BASE_URL).rstrip('/')
        self.timeout = timeout or config.REWRITE_TIMEOUT_SEC
        self.session = session or requests.Session()

    def rewrite(self, content: str, role: str) -> str:
        try:
            response = self.session.post(
                f"{self.base_url}/mask-content",
                json={"content": content, "role": role},
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise RewriteTimeoutError("Rewrite request timed out") from e
        except requests.ConnectionError as e:
            raise RewriteUnavailableError(f"Rewrite service unreachable: {e}") from e
        except requests.RequestException as e:
            raise RewriteError(f"Rewrite request failed: {e}") from e

        if response.status_code == 503:
            raise RewriteUnavailableError(_error_detail(response))
        if response.status_code == 504:
            raise RewriteTimeoutError(_error_detail(response))
        if response.status_code != 200:
            raise RewriteError(_error_detail(response))

        try:
            body = response.json()
        except ValueError as e:
            raise RewriteError("Rewrite service returned a non-JSON response") from e
        masked = body.get("masked", "") if isinstance(body, dict) else ""
        if not masked:
            raise RewriteError("Rewrite service returned an empty paraphrase")
        return masked


def _error_detail(response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return response.text or f"HTTP {response.status_code}"


def get_rewriter() -> BaseRewriter:
    """Get the configured server-side rewriter."""
    if not config.is_rewrite_configured():
        return UnconfiguredRewriter()
    return OllamaRewriter()


def check_rewrite_health() -> bool:
    """Global check used by the health endpoint."""
    rewriter = get_rewriter()
    if isinstance(rewriter, OllamaRewriter):
        return rewriter.is_healthy()
    return False
