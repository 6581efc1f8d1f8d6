"""Map a raw score vector onto the configured class names."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Sequence, Tuple

import numpy as np

from ..errors import SchemaError


@dataclass(frozen=True, slots=True)
class ClassList:
    """Ordered class names; position ``i`` labels score ``i`` of the model output."""

    names: Tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.names:
            raise ValueError("Class list must not be empty")
        if any(not name for name in self.names):
            raise ValueError("Class names must not be blank")
        if len(set(self.names)) != len(self.names):
            raise ValueError("Class names must be unique")

    @classmethod
    def from_names(cls, names: Iterable[str]) -> "ClassList":
        return cls(tuple(name.strip() for name in names))

    @classmethod
    def from_file(cls, path: Path | str) -> "ClassList":
        lines = Path(path).read_text(encoding="utf-8").splitlines()
        return cls.from_names(line for line in lines if line.strip())

    def __len__(self) -> int:
        return len(self.names)

    def __getitem__(self, index: int) -> str:
        return self.names[index]

    def __iter__(self) -> Iterator[str]:
        return iter(self.names)


@dataclass(frozen=True, slots=True)
class ClassificationResult:
    predicted_class: str
    confidence: float

    def to_response(self) -> dict:
        return {"predClass": self.predicted_class, "predConf": self.confidence}


def interpret(scores: Sequence[float], class_list: ClassList) -> ClassificationResult:
    """Return the top class and its raw score.

    Ties resolve to the lowest index. Scores are used as-is, no softmax.
    """
    if len(scores) == 0:
        raise SchemaError("Score vector is empty")
    if len(scores) != len(class_list):
        raise SchemaError(
            f"Score vector has {len(scores)} entries but {len(class_list)} classes are configured"
        )
    try:
        values = np.asarray(scores, dtype=np.float64)
    except (TypeError, ValueError) as exc:
        raise SchemaError(f"Score vector is not numeric: {exc}") from exc
    if values.ndim != 1:
        raise SchemaError(f"Score vector must be one-dimensional, got shape {values.shape}")
    if not np.all(np.isfinite(values)):
        raise SchemaError("Score vector contains non-finite values")

    index = int(np.argmax(values))
    return ClassificationResult(predicted_class=class_list[index], confidence=float(values[index]))
