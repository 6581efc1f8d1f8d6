"""Per-request orchestration of ingest, preprocess, invoke and interpret."""
from __future__ import annotations

import asyncio
import uuid
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Protocol, Sequence, Tuple, Type

import numpy as np

from ..errors import (
    DecodeError,
    GatewayError,
    IngestError,
    RemoteError,
    RequestCancelled,
    SchemaError,
)
from ..utils.logger import get_logger
from .ingest import DEFAULT_CHUNK_SIZE, AsyncReadable, read_upload
from .interpreter import ClassificationResult, ClassList, interpret
from .preprocess import DEFAULT_IMAGE_SIZE, transform_image_bytes

logger = get_logger(__name__)


class Stage(str, Enum):
    INGESTING = "ingesting"
    PREPROCESSING = "preprocessing"
    INVOKING = "invoking"
    INTERPRETING = "interpreting"
    DONE = "done"
    FAILED = "failed"


# Unexpected exceptions are reported as the error kind of the stage they escaped.
_STAGE_ERRORS: Dict[Stage, Type[GatewayError]] = {
    Stage.INGESTING: IngestError,
    Stage.PREPROCESSING: DecodeError,
    Stage.INVOKING: RemoteError,
    Stage.INTERPRETING: SchemaError,
}


class Predictor(Protocol):
    async def predict(self, tensor: np.ndarray) -> Sequence[float]: ...


class PredictionPipeline:
    def __init__(
        self,
        class_list: ClassList,
        predictor: Predictor,
        *,
        image_size: Tuple[int, int] = DEFAULT_IMAGE_SIZE,
        max_upload_bytes: int = 10 * 1024 * 1024,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.class_list = class_list
        self.predictor = predictor
        self.image_size = tuple(image_size)
        self.max_upload_bytes = max_upload_bytes
        self.chunk_size = chunk_size

    async def run(
        self,
        upload: AsyncReadable,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> ClassificationResult:
        """Classify one uploaded image.

        Raises a ``GatewayError`` subclass on failure, or ``RequestCancelled``
        when ``is_disconnected`` reports the caller has gone.
        """
        log = logger.bind(request_id=uuid.uuid4().hex[:12])
        stage = Stage.INGESTING

        async def enter(next_stage: Stage) -> None:
            nonlocal stage
            if is_disconnected is not None and await is_disconnected():
                raise RequestCancelled(f"Client disconnected before {next_stage.value}")
            stage = next_stage
            log.debug("Entering stage {stage}", stage=stage.value)

        try:
            await enter(Stage.INGESTING)
            image_bytes = await read_upload(
                upload, max_bytes=self.max_upload_bytes, chunk_size=self.chunk_size
            )

            await enter(Stage.PREPROCESSING)
            tensor = await asyncio.to_thread(transform_image_bytes, image_bytes, self.image_size)
            del image_bytes

            await enter(Stage.INVOKING)
            scores = await self.predictor.predict(tensor)

            await enter(Stage.INTERPRETING)
            result = interpret(scores, self.class_list)

            await enter(Stage.DONE)
        except RequestCancelled as exc:
            log.info("Request abandoned during {stage}: {reason}", stage=stage.value, reason=str(exc))
            raise
        except GatewayError as exc:
            log.warning(
                "Stage {stage} -> {failed}: {kind}: {message}",
                stage=stage.value,
                failed=Stage.FAILED.value,
                kind=exc.error_kind,
                message=exc.message,
            )
            raise
        except Exception as exc:
            error_cls = _STAGE_ERRORS.get(stage, GatewayError)
            log.exception("Unexpected failure during {stage}", stage=stage.value)
            raise error_cls(f"Unexpected failure during {stage.value}: {exc}") from exc

        log.info(
            "Predicted {label} ({confidence:.4f})",
            label=result.predicted_class,
            confidence=result.confidence,
        )
        return result
