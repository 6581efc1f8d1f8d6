"""Drain an uploaded file into a single in-memory buffer."""
from __future__ import annotations

from typing import Awaitable, Protocol

from ..errors import IngestError

DEFAULT_CHUNK_SIZE = 64 * 1024


class AsyncReadable(Protocol):
    def read(self, size: int = -1) -> Awaitable[bytes]: ...


async def read_upload(
    stream: AsyncReadable,
    *,
    max_bytes: int,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> bytes:
    """Read ``stream`` to the end and return its bytes in arrival order.

    Raises ``IngestError`` as soon as more than ``max_bytes`` have arrived or
    when the stream fails mid-read.
    """
    buffer = bytearray()
    while True:
        try:
            chunk = await stream.read(chunk_size)
        except OSError as exc:
            raise IngestError(f"Upload stream failed: {exc}") from exc
        if not chunk:
            break
        buffer.extend(chunk)
        if len(buffer) > max_bytes:
            raise IngestError(f"Upload exceeds the {max_bytes} byte limit")
    return bytes(buffer)
