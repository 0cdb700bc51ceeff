import asyncio
import logging
import re
import time
from functools import partial
from typing import List, Optional, Union

import httpx
import uvicorn
from fastapi import FastAPI, File, Request, UploadFile
from fastapi.responses import ORJSONResponse, PlainTextResponse, Response
from starlette.datastructures import UploadFile as StarletteUploadFile
from starlette.middleware.base import BaseHTTPMiddleware

from config import (APP_NAME, CORS_PATTERNS, HF_TOKEN, HOST, LIVENESS_MESSAGE,
                    MODEL_MAX_RETRIES, MODEL_RETRY_BACKOFF, MODEL_URL, PORT,
                    REQUEST_TIMEOUT, UPLOAD_DIR)
from inference import (InferenceRequestFailed, InvalidModelResponse,
                       TransportError, query_model_with_retry)
from models import ErrorResponse, PredictionResult, PredictResponse
from utils.helpers import (ephemeral_upload, log_processing_step, log_request,
                           read_temp_upload)

# Configure main logger
logger = logging.getLogger(__name__)

logger.info(f"MODEL_URL: {MODEL_URL}")
logger.info(f"HF_TOKEN configured: {bool(HF_TOKEN)}")
logger.info(f"Request timeout: {REQUEST_TIMEOUT}s, retries: {MODEL_MAX_RETRIES}")
logger.info(f"CORS patterns: {CORS_PATTERNS}")
if not HF_TOKEN:
    logger.warning("HF_TOKEN is not set; the hosted model will reject requests")


def is_cors_allowed(origin: str, allowed_patterns: List[str]) -> bool:
    """Check if an origin matches any of the allowed CORS patterns (supports wildcards)"""
    if not origin:
        return False

    for pattern in allowed_patterns:
        pattern = pattern.strip()
        if not pattern:
            continue

        if origin == pattern:
            return True

        if '*' in pattern:
            regex_pattern = re.escape(pattern).replace(r'\*', '.*')
            if re.fullmatch(regex_pattern, origin):
                return True

    logger.warning(f"CORS blocked for origin: {origin}")
    return False


class CustomCORSMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        origin = request.headers.get("origin")
        allowed = bool(origin) and is_cors_allowed(origin, CORS_PATTERNS)

        # Answer preflight requests without reaching the routes
        if request.method == "OPTIONS" and allowed:
            response = Response()
            response.headers["Access-Control-Max-Age"] = "86400"
        else:
            response = await call_next(request)

        if allowed:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Access-Control-Allow-Methods"] = "*"
            response.headers["Access-Control-Allow-Headers"] = "*"
            response.headers["Vary"] = "Origin"

        return response


app = FastAPI(title=APP_NAME, default_response_class=ORJSONResponse)

app.add_middleware(CustomCORSMiddleware)


def build_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=REQUEST_TIMEOUT)


def error_response(status_code: int, error: str, **details) -> ORJSONResponse:
    body = ErrorResponse(error=error, **details)
    return ORJSONResponse(body.model_dump(exclude_unset=True), status_code=status_code)


async def run_prediction(contents: bytes, filename: Optional[str]) -> PredictionResult:
    """Write the upload to disk, send it to the model, and always remove it"""
    async with ephemeral_upload(contents, UPLOAD_DIR, filename) as path:
        image_bytes = await read_temp_upload(path)
        log_processing_step("Sending image for prediction", {"path": path})
        async with build_http_client() as client:
            return await query_model_with_retry(
                image_bytes,
                client,
                retries=MODEL_MAX_RETRIES,
                backoff=MODEL_RETRY_BACKOFF,
                model_url=MODEL_URL,
                token=HF_TOKEN,
            )


def log_prediction_outcome(filename: Optional[str], t0: float, task: "asyncio.Future[PredictionResult]"):
    """Log how a prediction task ended, even after its request was cancelled"""
    elapsed = time.perf_counter() - t0
    if task.cancelled():
        log_request("/predict", elapsed, False, {"filename": filename, "error": "cancelled"})
        return

    exc = task.exception()
    if exc is None:
        result = task.result()
        log_request("/predict", elapsed, True, {
            "filename": filename,
            "prediction": result.label,
            "confidence": result.confidence,
        })
    elif isinstance(exc, InferenceRequestFailed):
        log_request("/predict", elapsed, False, {"filename": filename, "upstream_status": exc.status_code})
    elif isinstance(exc, InvalidModelResponse):
        log_request("/predict", elapsed, False, {"filename": filename, "error": "invalid_model_response"})
    elif isinstance(exc, TransportError):
        log_request("/predict", elapsed, False, {"filename": filename, "error": str(exc)})
    else:
        logger.error(f"Image prediction failed: {str(exc)}", exc_info=exc)
        log_request("/predict", elapsed, False, {"filename": filename, "error": str(exc)})


@app.get("/", response_class=PlainTextResponse)
async def root():
    return LIVENESS_MESSAGE


@app.post("/predict", response_model=PredictResponse)
async def predict(image: Union[UploadFile, str, None] = File(None)):
    # Text fields and file parts without a filename carry no image
    if not isinstance(image, StarletteUploadFile) or not image.filename:
        logger.warning("Prediction request without an image")
        return error_response(400, "No image uploaded")

    contents = await image.read()
    logger.info(f"Image prediction request received: {image.filename}, size: {len(contents)} bytes")

    # Client disconnects must not abort the model call or skip cleanup
    task = asyncio.ensure_future(run_prediction(contents, image.filename))
    task.add_done_callback(partial(log_prediction_outcome, image.filename, time.perf_counter()))
    try:
        result = await asyncio.shield(task)
    except InferenceRequestFailed as e:
        return error_response(500, "Error connecting to model", details={"status_code": e.status_code})
    except TransportError:
        return error_response(500, "Error connecting to model")
    except InvalidModelResponse as e:
        return error_response(500, "Model inference failed", details=e.payload)
    except Exception:
        return error_response(500, "Internal server error")

    return PredictResponse.from_result(result)


if __name__ == "__main__":
    logger.info(f"Server running on http://localhost:{PORT}")
    uvicorn.run(app, host=HOST, port=PORT)
