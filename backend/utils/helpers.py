import logging
import os
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import aiofiles

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def log_request(endpoint: str, processing_time: float, success: bool, additional_info: Optional[dict] = None):
    """Enhanced logging for API requests"""
    status = "SUCCESS" if success else "ERROR"
    log_msg = f"[API] {endpoint} - {status} - {processing_time:.3f}s"

    if additional_info:
        info_str = ", ".join([f"{k}: {v}" for k, v in additional_info.items()])
        log_msg += f" - {info_str}"

    if success:
        logger.info(log_msg)
    else:
        logger.error(log_msg)


def log_processing_step(step: str, details: Optional[dict] = None):
    """Log individual processing steps"""
    log_msg = f"[PROCESSING] {step}"
    if details:
        info_str = ", ".join([f"{k}: {v}" for k, v in details.items()])
        log_msg += f" - {info_str}"
    logger.info(log_msg)


def upload_path(upload_dir: str, filename: Optional[str] = None) -> str:
    """Unique path for one request's upload, keeping the client's extension"""
    _, ext = os.path.splitext(filename or "")
    return os.path.join(upload_dir, f"upload_{uuid.uuid4().hex}{ext.lower()}")


async def read_temp_upload(path: str) -> bytes:
    async with aiofiles.open(path, 'rb') as f:
        return await f.read()


def cleanup_temp_file(file_path: str):
    """Clean up temporary file"""
    try:
        if os.path.exists(file_path):
            os.remove(file_path)
            log_processing_step("Temporary file cleaned up", {"path": file_path})
    except OSError as e:
        logger.warning(f"Failed to cleanup temporary file {file_path}: {e}")


@asynccontextmanager
async def ephemeral_upload(data: bytes, upload_dir: str, filename: Optional[str] = None) -> AsyncIterator[str]:
    """Hold an uploaded image on disk for the body of the block.

    The file is removed once on exit, whether the block returns or raises.
    If writing fails part way, the partial file is removed as well.
    """
    temp_path = upload_path(upload_dir, filename)
    try:
        os.makedirs(upload_dir, exist_ok=True)
        log_processing_step("Saving upload to temporary file", {
            "path": temp_path,
            "size_bytes": len(data),
        })
        async with aiofiles.open(temp_path, 'wb') as f:
            await f.write(data)
        yield temp_path
    finally:
        cleanup_temp_file(temp_path)
