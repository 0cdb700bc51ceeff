import asyncio
import os

import pytest

from main import is_cors_allowed
from utils.helpers import cleanup_temp_file, ephemeral_upload, read_temp_upload


def test_ephemeral_upload_roundtrip_and_cleanup(tmp_path):
    upload_dir = str(tmp_path / "uploads")

    async def go():
        async with ephemeral_upload(b"leaf", upload_dir, "Leaf.JPG") as path:
            assert path.endswith(".jpg")
            assert os.path.dirname(path) == upload_dir
            return path, await read_temp_upload(path)

    path, data = asyncio.run(go())

    assert data == b"leaf"
    assert not os.path.exists(path)
    assert os.listdir(upload_dir) == []


def test_ephemeral_upload_removed_when_block_raises(tmp_path):
    seen = []

    async def go():
        async with ephemeral_upload(b"leaf", str(tmp_path), "leaf.png") as path:
            seen.append(path)
            raise RuntimeError("model exploded")

    with pytest.raises(RuntimeError):
        asyncio.run(go())

    assert not os.path.exists(seen[0])


def test_ephemeral_upload_names_are_unique(tmp_path):
    async def go():
        async with ephemeral_upload(b"a", str(tmp_path), "leaf.jpg") as first:
            async with ephemeral_upload(b"b", str(tmp_path), "leaf.jpg") as second:
                return first, second

    first, second = asyncio.run(go())
    assert first != second


def test_cleanup_missing_file_is_quiet(tmp_path):
    cleanup_temp_file(str(tmp_path / "gone.jpg"))


@pytest.mark.parametrize("origin, patterns, allowed", [
    ("http://localhost:3000", ["*"], True),
    ("http://localhost:3000", ["http://localhost:3000"], True),
    ("https://leafscan-web.netlify.app", ["https://*.netlify.app"], True),
    ("https://evil.example", ["https://*.netlify.app"], False),
    ("", ["*"], False),
])
def test_is_cors_allowed(origin, patterns, allowed):
    assert is_cors_allowed(origin, patterns) is allowed
