"""
Client for the hosted plant disease classifier.

The model takes raw image bytes and answers with a JSON array of
``{"label": ..., "score": ...}`` objects ordered by descending score.
"""

import asyncio
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from config import HF_TOKEN, MODEL_URL
from models import ModelLabel, PredictionResult

logger = logging.getLogger(__name__)


class InferenceError(Exception):
    """Base class for failures talking to the hosted model"""


class InferenceRequestFailed(InferenceError):
    def __init__(self, status_code: int, body: str = ""):
        super().__init__(f"API Request Failed: {status_code}")
        self.status_code = status_code
        self.body = body


class InvalidModelResponse(InferenceError):
    def __init__(self, payload: Any):
        super().__init__("Invalid model response")
        self.payload = payload


class TransportError(InferenceError):
    """Network-level failure (DNS, connection reset, timeout) reaching the model"""


def parse_model_output(payload: Any) -> PredictionResult:
    """Normalize the model's ranked label list into the top prediction."""
    if not isinstance(payload, list) or len(payload) == 0:
        logger.error(f"Invalid model response: {payload!r}")
        raise InvalidModelResponse(payload)

    try:
        top = ModelLabel.model_validate(payload[0])
    except ValidationError as e:
        logger.error(f"Invalid top prediction in model response: {e}")
        raise InvalidModelResponse(payload) from e

    return PredictionResult(label=top.label, confidence=round(top.score * 100, 2))


async def query_model(
    image_bytes: bytes,
    client: httpx.AsyncClient,
    model_url: str = MODEL_URL,
    token: str = HF_TOKEN,
) -> PredictionResult:
    """Send one image to the model and return its top prediction"""
    logger.info(f"Calling hosted model with {len(image_bytes)} bytes")
    try:
        response = await client.post(
            model_url,
            content=image_bytes,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/octet-stream",
            },
        )
    except httpx.TimeoutException as e:
        logger.error("Hosted model request timed out")
        raise TransportError(f"Model request timed out: {e}") from e
    except httpx.TransportError as e:
        logger.error(f"Hosted model request failed: {str(e)}")
        raise TransportError(str(e)) from e

    if not response.is_success:
        error_text = response.text
        logger.error(f"Hosted model returned error {response.status_code}: {error_text}")
        raise InferenceRequestFailed(response.status_code, error_text)

    try:
        payload = response.json()
    except ValueError as e:
        logger.error(f"Hosted model returned non-JSON body: {response.text!r}")
        raise InvalidModelResponse(response.text) from e

    result = parse_model_output(payload)
    logger.info(f"Top prediction: {result.label} ({result.confidence:.2f}%)")
    return result


async def query_model_with_retry(
    image_bytes: bytes,
    client: httpx.AsyncClient,
    retries: int = 0,
    backoff: float = 0.5,
    **kwargs,
) -> PredictionResult:
    """query_model, retrying transport errors only.

    Upstream error statuses and malformed replies are returned to the caller
    on the first occurrence.
    """
    attempt = 0
    while True:
        try:
            return await query_model(image_bytes, client, **kwargs)
        except TransportError:
            if attempt >= retries:
                raise
            delay = backoff * (2 ** attempt)
            attempt += 1
            logger.warning(f"Retrying hosted model in {delay:.2f}s (attempt {attempt + 1}/{retries + 1})")
            await asyncio.sleep(delay)
