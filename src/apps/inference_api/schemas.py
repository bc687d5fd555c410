from __future__ import annotations
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict


class InferRequestMeta(BaseModel):
    automl_id: str = Field(..., min_length=1, description="Dataset id the model was trained on")
    user_id: Optional[str] = Field(None, description="Requesting user (optional)")

    model_config = ConfigDict(extra="forbid")


class InferenceItem(BaseModel):
    label: str
    confidence: float


class ModelInfo(BaseModel):
    name: str
    generated_at: int


class ModelStatusResponse(BaseModel):
    automl_id: str
    model_exists: bool
    status_text: str
    training_in_progress: bool = False
    last_trained_ms: Optional[int] = None
    latest_model: Optional[str] = None


class DatasetItem(BaseModel):
    automl_id: str
    name: str
    description: str = ""
    sharing: Optional[str] = None
    status: Optional[ModelStatusResponse] = None


class DatasetListResponse(BaseModel):
    items: List[DatasetItem] = []


class InferResponse(BaseModel):
    automl_id: str
    state: str
    model: Optional[ModelInfo] = None
    inferences: List[InferenceItem] = []
    display: List[str] = []
    notifications: List[str] = []
    transitions: List[str] = []
    latency_ms: int = 0


class HealthzResponse(BaseModel):
    status: str = "ok"
    records: str = "unknown"
    minio: str = "unknown"
