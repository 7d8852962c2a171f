import logging
from typing import Optional

import requests

from voice_input.config import cfg
from voice_input.errors import RefinementError

logger = logging.getLogger(__name__)

PROVIDERS = ("ollama", "openai")


class RefinementClient:
    """LLM text refinement over Ollama or an OpenAI-compatible HTTP API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        provider: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or cfg.refine_url).rstrip("/")
        self.model = model if model is not None else cfg.refine_model
        self.provider = (provider or cfg.refine_provider).lower()
        if self.provider not in PROVIDERS:
            raise RefinementError(f"Unknown refinement provider: {self.provider}")
        self.timeout = timeout if timeout is not None else cfg.refine_timeout_s
        self.session = session or requests.Session()

    def refine(self, text: str, prompt_template: str) -> str:
        prompt = prompt_template.replace("{input}", text)
        if self.provider == "ollama":
            return self._refine_with_ollama(prompt)
        return self._refine_with_openai_compat(prompt)

    def _post(self, url: str, data: dict) -> dict:
        logger.info("Sending refinement request: %s", url)
        try:
            response = self.session.post(url, json=data, timeout=self.timeout)
        except requests.RequestException as e:
            raise RefinementError(f"Failed to send request to {url}: {e}") from e

        if not response.ok:
            raise RefinementError(f"{self.provider} API error ({response.status_code}): {response.text}")

        try:
            return response.json()
        except ValueError as e:
            raise RefinementError(f"Failed to parse {self.provider} response: {e}") from e

    def _refine_with_ollama(self, prompt: str) -> str:
        data = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
        }
        result = self._post(f"{self.base_url}/api/generate", data)
        if not isinstance(result, dict) or not isinstance(result.get("response"), str):
            raise RefinementError(f"Unexpected Ollama response: {result!r}")

        logger.info("LLM refinement complete (Ollama)")
        return result["response"].strip()

    def _refine_with_openai_compat(self, prompt: str) -> str:
        data = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "stream": False,
        }
        result = self._post(f"{self.base_url}/v1/chat/completions", data)
        choices = result.get("choices") if isinstance(result, dict) else None
        if not isinstance(choices, list):
            raise RefinementError("OpenAI-compatible response has no 'choices'")

        refined = ""
        if choices:
            message = choices[0].get("message") if isinstance(choices[0], dict) else None
            content = message.get("content") if isinstance(message, dict) else None
            if not isinstance(content, str):
                raise RefinementError(f"Unexpected OpenAI-compatible choice: {choices[0]!r}")
            refined = content.strip()

        logger.info("LLM refinement complete (OpenAI-compatible)")
        return refined

    def is_available(self) -> bool:
        """Probe the server; never raises."""
        if self.provider == "ollama":
            url = f"{self.base_url}/api/tags"
        else:
            url = f"{self.base_url}/v1/models"
        try:
            return self.session.get(url, timeout=self.timeout or 5.0).ok
        except requests.RequestException:
            return False
