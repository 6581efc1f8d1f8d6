"""Image preprocessing for the remote food classifier."""
from __future__ import annotations

import io
from functools import lru_cache
from typing import Tuple

import numpy as np
import torch
from PIL import Image
from torchvision import transforms
from torchvision.transforms import InterpolationMode

from ..errors import DecodeError

DEFAULT_IMAGE_SIZE = (224, 224)


@lru_cache(maxsize=4)
def _image_transform(size: Tuple[int, int]) -> transforms.Compose:
    # Raw 0-255 magnitudes; the model does its own scaling.
    return transforms.Compose(
        [
            transforms.PILToTensor(),
            transforms.Lambda(lambda tensor: tensor.to(torch.float32)),
            transforms.Resize(size, interpolation=InterpolationMode.BILINEAR, antialias=False),
        ]
    )


def decode_image(image_bytes: bytes) -> Image.Image:
    """Decode ``image_bytes`` into a fully loaded 3-channel RGB image."""
    if not image_bytes:
        raise DecodeError("Uploaded file is empty")
    try:
        with Image.open(io.BytesIO(image_bytes)) as image:
            image.load()
            return image.convert("RGB")
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeError(f"Could not decode image: {exc}") from exc


def transform_image_bytes(
    image_bytes: bytes, size: Tuple[int, int] = DEFAULT_IMAGE_SIZE
) -> np.ndarray:
    """Convert raw bytes into a ``[1, H, W, 3]`` float32 batch.

    The image is stretched to ``size`` (height, width) with bilinear
    interpolation; aspect ratio is not preserved.
    """
    image = decode_image(image_bytes)
    tensor = _image_transform(tuple(size))(image)
    return tensor.permute(1, 2, 0).unsqueeze(0).contiguous().numpy()
