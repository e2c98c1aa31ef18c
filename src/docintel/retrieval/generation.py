"""Text generation capability used to compose answers."""

from typing import Optional, Protocol

import httpx

from docintel.config import settings
from docintel.errors import UpstreamUnavailable
from docintel.logging_config import get_logger

logger = get_logger(__name__)


class GenerationCapability(Protocol):
    """Prompt → text capability."""

    def generate(self, prompt: str, max_tokens: int, temperature: float) -> str:
        ...


class OllamaGenerator:
    """GenerationCapability backed by Ollama's /api/generate endpoint."""

    def __init__(self, client: Optional[httpx.Client] = None, model: Optional[str] = None):
        self.client = client or httpx.Client(
            base_url=settings.ollama_host, timeout=settings.request_timeout
        )
        self.model = model or settings.generation_model

    def generate(self, prompt: str, max_tokens: int, temperature: float) -> str:
        """Generate a completion.

        Raises:
            UpstreamUnavailable: On timeout, error status, or an empty or
                malformed response.
        """
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": temperature, "num_predict": max_tokens},
        }
        try:
            response = self.client.post("/api/generate", json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            logger.error("generation_timeout", model=self.model)
            raise UpstreamUnavailable("generation", f"request timed out: {e}") from e
        except httpx.HTTPError as e:
            logger.error("generation_request_failed", model=self.model, error=str(e))
            raise UpstreamUnavailable("generation", str(e)) from e
        except ValueError as e:
            raise UpstreamUnavailable("generation", f"invalid JSON response: {e}") from e

        text = body.get("response") if isinstance(body, dict) else None
        if not isinstance(text, str) or not text.strip():
            raise UpstreamUnavailable("generation", "empty response")

        logger.debug(
            "generation_completed",
            model=self.model,
            prompt_tokens=body.get("prompt_eval_count"),
            output_tokens=body.get("eval_count"),
        )
        return text.strip()
