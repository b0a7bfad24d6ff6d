# backend/job_driver.py

import asyncio
import logging
from typing import Awaitable, Callable, List

from config.settings import settings

from .errors import (
    ConfigurationError,
    GenerationCanceled,
    GenerationFailed,
    GenerationTimeout,
    NetworkError,
    ProviderError,
    ValidationError,
)
from .model import Prediction
from .provider_client import ProviderClient

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class JobDriver:
    """
    Drives one external prediction to a terminal state.

    The driver keeps no state between calls: each await_completion owns its
    attempt counter and job id, so one instance can be shared by requests.
    """

    def __init__(
        self,
        client: ProviderClient,
        poll_interval: float = settings.POLL_INTERVAL,
        max_attempts: int = settings.MAX_POLL_ATTEMPTS,
        sleep: Sleep = asyncio.sleep,
    ):
        self.client = client
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self._sleep = sleep

    async def submit(self, prompt: str, num_outputs: int = settings.NUM_OUTPUTS) -> Prediction:
        if not prompt or not prompt.strip():
            raise ValidationError("Missing required field: prompt is required")
        if num_outputs < 1:
            raise ValidationError("num_outputs must be at least 1")
        if not self.client.is_configured:
            logger.error("PROVIDER_API_TOKEN is not configured")
            raise ConfigurationError()

        logger.info("Submitting prediction (%d outputs) with prompt: %s", num_outputs, prompt)
        prediction = await self.client.create_prediction(prompt, num_outputs)
        logger.info("Prediction started: id=%s status=%s", prediction.id, prediction.status)
        return prediction

    async def status(self, job_id: str) -> Prediction:
        """Single status check, no polling."""
        return await self.client.get_prediction(job_id)

    async def await_completion(self, job_id: str) -> List[str]:
        """
        Poll job_id until it reaches a terminal status.
        Returns the output URLs, raises on failure, cancel or timeout.
        """
        attempts = 0
        while attempts < self.max_attempts:
            try:
                prediction = await self.client.get_prediction(job_id)
            except NetworkError as e:
                raise ProviderError(e.message) from e

            attempts += 1
            logger.info("Poll %d/%d for %s: %s", attempts, self.max_attempts, job_id, prediction.status)

            if prediction.status == "succeeded":
                return prediction.output_urls()

            if prediction.status == "failed":
                message = str(prediction.error) if prediction.error else None
                logger.warning("Prediction %s failed: %s", job_id, message)
                raise GenerationFailed(message)

            if prediction.status == "canceled":
                logger.warning("Prediction %s was canceled", job_id)
                raise GenerationCanceled()

            if attempts < self.max_attempts:
                await self._sleep(self.poll_interval)

        logger.warning("Prediction %s still running after %d polls", job_id, attempts)
        raise GenerationTimeout()

    async def run_generation(self, prompt: str, num_outputs: int = settings.NUM_OUTPUTS) -> List[str]:
        prediction = await self.submit(prompt, num_outputs)
        return await self.await_completion(prediction.id)
