from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Dict, Any, Union


DatasetRef = str


@dataclass(frozen=True)
class ModelRecord:
    name: str
    generated_at: int
    dataset_id: str

    @classmethod
    def from_record(cls, row: Dict[str, Any]) -> "ModelRecord":
        name = row.get("name")
        if not name:
            raise ValueError(f"model record without name: {row}")
        try:
            generated_at = int(row["generated_at"])
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"model record '{name}' has no usable generated_at") from e
        return cls(name=str(name), generated_at=generated_at, dataset_id=str(row.get("dataset_id", "")))


@dataclass(frozen=True)
class ModelRef:
    name: str
    generated_at: int = 0

    @classmethod
    def for_record(cls, record: ModelRecord) -> "ModelRef":
        return cls(name=record.name, generated_at=record.generated_at)


@dataclass(frozen=True)
class LoadedModelHandle:
    artifact_name: str
    generated_at: int
    model_path: str
    labels_path: str


@dataclass(frozen=True)
class DownloadFailed:
    reason: str


@dataclass(frozen=True)
class LoadFailed:
    reason: str


LoadOutcome = Union[LoadedModelHandle, DownloadFailed, LoadFailed]


@dataclass
class Inference:
    label: str
    confidence: float

    def display_text(self) -> str:
        return f"{self.label.upper()} {self.confidence:.3f}"

    def as_dict(self) -> Dict:
        d = asdict(self)
        d["confidence"] = float(self.confidence)
        return d
