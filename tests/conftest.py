"""Shared fixtures for the gateway tests."""
from __future__ import annotations

import io
from typing import List, Sequence

import numpy as np
import pytest
from PIL import Image

from foodvision.config import Settings


def make_image_bytes(
    size=(64, 48), color=(255, 0, 0), mode: str = "RGB", fmt: str = "PNG"
) -> bytes:
    buffer = io.BytesIO()
    fill = color if mode != "L" else color[0]
    if mode == "RGBA" and len(color) == 3:
        fill = (*color, 128)
    Image.new(mode, size, color=fill).save(buffer, format=fmt)
    return buffer.getvalue()


class StubPredictor:
    """Records every tensor it receives and answers with fixed scores."""

    def __init__(self, scores: Sequence[float] = (0.1, 0.7, 0.2)) -> None:
        self.scores = list(scores)
        self.calls: List[np.ndarray] = []

    async def predict(self, tensor: np.ndarray) -> List[float]:
        self.calls.append(tensor)
        return self.scores


class BytesStream:
    """Async readable over an in-memory buffer, like ``UploadFile``."""

    def __init__(self, data: bytes) -> None:
        self._buffer = io.BytesIO(data)
        self.reads = 0

    async def read(self, size: int = -1) -> bytes:
        self.reads += 1
        return self._buffer.read(size)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        class_names_raw="apple,banana,cherry",
        max_upload_bytes=512 * 1024,
    )
