"""Google Gemini provider integration over the generateContent REST API."""

import logging
from typing import Any, Dict, Optional

import httpx

from ..error_classifier import ErrorClassifier
from .base import BaseLLMProvider, LLMProviderError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TIMEOUT_SECONDS = 30.0
CONNECTION_TEST_PROMPT = "Test connection"


class GeminiProvider(BaseLLMProvider):
    """Gemini integration for question generation.

    Each call to ``generate_completion`` issues exactly one POST request.
    Failures are classified by HTTP status or transport error and raised
    as ``LLMProviderError``; retry policy belongs to the caller.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-flash-latest",
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional[httpx.Client] = None,
    ):
        """
        Initialize Gemini provider.

        Args:
            api_key: Google API key
            model: Model to use
            base_url: API base URL, without trailing slash
            timeout: Per-call timeout in seconds
            client: Preconfigured httpx client (tests inject a mock transport)
        """
        super().__init__(api_key, model)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)
        self._owns_client = client is None

    @property
    def endpoint(self) -> str:
        """Full generateContent URL for the configured model."""
        return f"{self.base_url}/models/{self.model}:generateContent"

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": self.api_key,
        }

    def _build_payload(
        self, prompt: str, temperature: float, max_tokens: int, **kwargs: Any
    ) -> Dict[str, Any]:
        generation_config: Dict[str, Any] = {
            "temperature": temperature,
            "maxOutputTokens": max_tokens,
        }
        generation_config.update(kwargs)
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }

    def generate_completion(
        self,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        **kwargs: Any,
    ) -> str:
        """
        Generate a text completion using the Gemini API.

        Args:
            prompt: The prompt to send to the model
            temperature: Sampling temperature (0.0 to 2.0)
            max_tokens: Maximum tokens to generate
            **kwargs: Extra ``generationConfig`` fields

        Returns:
            The generated text

        Raises:
            LLMProviderError: On timeout, transport failure, non-2xx status
                or a response without a text part
        """
        payload = self._build_payload(prompt, temperature, max_tokens, **kwargs)

        try:
            response = self._client.post(
                self.endpoint,
                json=payload,
                headers=self._get_headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise self._handle_api_error(e) from e

        try:
            data = response.json()
        except ValueError as e:
            raise self._malformed("response body is not JSON") from e

        text = self._extract_text(data)
        if text is None:
            raise self._malformed("no text part in first candidate")
        return text

    def check_connection(self) -> bool:
        """
        Probe the API with a minimal prompt.

        Returns:
            True if the API answered successfully, False otherwise
        """
        logger.info("Testing Gemini API connection...")
        try:
            self.generate_completion(CONNECTION_TEST_PROMPT, max_tokens=8)
        except LLMProviderError as e:
            logger.error(f"Gemini API connection test failed: {e}")
            return False
        logger.info("Gemini API connection test successful")
        return True

    def close(self) -> None:
        """Close the underlying HTTP client if this provider created it."""
        if self._owns_client:
            self._client.close()

    @staticmethod
    def _extract_text(data: Any) -> Optional[str]:
        """Pull the text of the first candidate out of a response payload.

        Multiple text parts are concatenated in order.
        """
        if not isinstance(data, dict):
            return None
        candidates = data.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            return None
        content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
        if not isinstance(content, dict):
            return None
        parts = content.get("parts")
        if not isinstance(parts, list):
            return None
        texts = [
            part["text"]
            for part in parts
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        ]
        if not texts:
            return None
        return "".join(texts)

    def _malformed(self, detail: str) -> LLMProviderError:
        return LLMProviderError(
            classified_error=ErrorClassifier.malformed_response(
                self.get_provider_name(), detail
            )
        )
