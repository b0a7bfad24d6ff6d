# backend/provider_client.py

import logging
from typing import Any, Dict, Optional

import httpx

from config.settings import settings

from .errors import ConfigurationError, NetworkError, ProviderError
from .model import Prediction

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    """Best effort: provider message from an error response, else the raw text."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:500] or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        for key in ("error", "detail", "title"):
            if data.get(key):
                return str(data[key])
    return f"HTTP {response.status_code}: {str(data)[:500]}"


class ProviderClient:
    """
    Replicate-style prediction API.

    Two creation endpoints exist: the model-scoped one
    (POST /models/{owner}/{name}/predictions) and the version-scoped one
    (POST /predictions with "version" in the body). Which one is used, and
    whether the credential goes out as "Bearer" or "Token", is configuration.
    """

    def __init__(
        self,
        api_token: Optional[str] = None,
        base_url: str = settings.PROVIDER_BASE_URL,
        model: str = settings.PROVIDER_MODEL,
        model_version: Optional[str] = settings.PROVIDER_MODEL_VERSION,
        auth_scheme: str = settings.PROVIDER_AUTH_SCHEME,
        output_quality: int = settings.OUTPUT_QUALITY,
        extra_input: Optional[Dict[str, Any]] = None,
        request_timeout: float = settings.REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.model_version = model_version
        self.auth_scheme = auth_scheme
        self.output_quality = output_quality
        self.extra_input = dict(settings.PROVIDER_EXTRA_INPUT if extra_input is None else extra_input)
        self.request_timeout = request_timeout
        self.transport = transport

    @classmethod
    def from_settings(cls) -> "ProviderClient":
        return cls(api_token=settings.PROVIDER_API_TOKEN)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_token)

    @property
    def create_url(self) -> str:
        if self.model_version:
            return f"{self.base_url}/predictions"
        return f"{self.base_url}/models/{self.model}/predictions"

    def status_url(self, prediction_id: str) -> str:
        return f"{self.base_url}/predictions/{prediction_id}"

    def _headers(self) -> Dict[str, str]:
        if not self.api_token:
            logger.error("PROVIDER_API_TOKEN is not configured")
            raise ConfigurationError()
        return {
            "Authorization": f"{self.auth_scheme} {self.api_token}",
            "Content-Type": "application/json",
        }

    def build_payload(self, prompt: str, num_outputs: int) -> Dict[str, Any]:
        model_input: Dict[str, Any] = {
            "prompt": prompt,
            "num_outputs": num_outputs,
            "aspect_ratio": "16:9",
            "output_format": "png",
            "output_quality": self.output_quality,
        }
        model_input.update(self.extra_input)

        payload: Dict[str, Any] = {"input": model_input}
        if self.model_version:
            payload["version"] = self.model_version
        return payload

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.request_timeout, transport=self.transport)

    async def _send(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        headers = self._headers()
        headers.update(kwargs.pop("headers", {}))

        try:
            async with self._client() as client:
                r = await client.request(method, url, headers=headers, **kwargs)
        except httpx.TransportError as e:
            logger.error("Transport error calling %s %s: %s", method, url, e)
            raise NetworkError(f"Could not reach the generation provider: {e}") from e

        if r.is_error:
            message = _error_message(r)
            logger.error("Provider returned %s for %s %s: %s", r.status_code, method, url, message)
            raise ProviderError(message)

        try:
            data = r.json()
        except ValueError as e:
            raise ProviderError(f"Provider returned invalid JSON: {r.text[:200]}") from e
        if not isinstance(data, dict):
            raise ProviderError(f"Unexpected provider response: {str(data)[:200]}")
        return data

    async def create_prediction(self, prompt: str, num_outputs: int) -> Prediction:
        """
        POST a new prediction and return it as issued by the provider.
        """
        payload = self.build_payload(prompt, num_outputs)
        data = await self._send(
            "POST", self.create_url, json=payload, headers={"Prefer": "wait"}
        )
        logger.debug("Create prediction response: %s", data)

        if data.get("error"):
            logger.error("Provider error on create: %s", data["error"])
            raise ProviderError(str(data["error"]))
        if not data.get("id"):
            raise ProviderError(f"Provider did not return a prediction id: {data}")
        try:
            return Prediction.model_validate(data)
        except ValueError as e:
            raise ProviderError(f"Unexpected provider response: {str(data)[:200]}") from e

    async def get_prediction(self, prediction_id: str) -> Prediction:
        data = await self._send("GET", self.status_url(prediction_id))
        logger.debug("Status check response: %s", data)
        try:
            return Prediction.model_validate(data)
        except ValueError as e:
            raise ProviderError(f"Unexpected provider response: {str(data)[:200]}") from e
