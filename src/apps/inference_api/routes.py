from __future__ import annotations
import time, logging
from typing import Optional, List

from fastapi import APIRouter, UploadFile, File, Form, HTTPException, Query
from fastapi.responses import JSONResponse
import requests

from .schemas import (
    InferRequestMeta, InferResponse, InferenceItem, ModelInfo, HealthzResponse,
    ModelStatusResponse, DatasetItem, DatasetListResponse,
)
from . import deps
from aml import Inference, SessionContext, SessionState, model_status, visible_datasets
from aml.session import MSG_DOWNLOAD_ERROR, MSG_LOAD_ERROR
from aml.status import ModelStatus

router = APIRouter()
log = logging.getLogger("aml.inference_api")


class UploadPicker:
    """Hands out the uploaded image once; a retake finds nothing more to pick."""

    def __init__(self, data: bytes):
        self._data: Optional[bytes] = data

    def pick_image(self, source: str) -> Optional[bytes]:
        data, self._data = self._data, None
        return data


def _close_after_results(image: bytes, inferences: List[Inference]) -> bool:
    return False


def _status_for(automl_id: str) -> ModelStatus:
    records = deps.get_records()
    models = records.query("models", {"dataset_id": automl_id}, order_by="generated_at", descending=True)
    operations = records.query("operations", {"dataset_id": automl_id})
    return model_status(models, operations)


def _status_response(automl_id: str, st: ModelStatus) -> ModelStatusResponse:
    return ModelStatusResponse(automl_id=automl_id, **st.as_dict())


@router.get("/healthz", response_model=HealthzResponse)
def healthz():
    records_state = "ok" if deps.get_records().healthy() else "down"
    if not deps.minio_enabled():
        minio_state = "disabled"
    else:
        try:
            minio_state = "ok" if deps.get_minio().bucket_ok() else "missing-bucket"
        except Exception as e:
            log.warning("MinIO health check failed: %s", e)
            minio_state = "down"
    status = "ok" if (records_state == "ok" and minio_state == "ok") else "degraded"
    return HealthzResponse(status=status, records=records_state, minio=minio_state)


@router.get("/v1/datasets", response_model=DatasetListResponse)
def list_datasets(user_id: Optional[str] = Query(None)):
    items: List[DatasetItem] = []
    for ds in visible_datasets(deps.list_dataset_rows(), user_id):
        items.append(DatasetItem(
            automl_id=ds.automl_id,
            name=ds.name,
            description=ds.description,
            sharing=ds.sharing_label(user_id),
            status=_status_response(ds.automl_id, _status_for(ds.automl_id)),
        ))
    return DatasetListResponse(items=items)


@router.get("/v1/datasets/{automl_id}/model-status", response_model=ModelStatusResponse)
def dataset_model_status(automl_id: str):
    return _status_response(automl_id, _status_for(automl_id))


@router.post("/v1/datasets/{automl_id}/infer", response_model=InferResponse)
def infer(
    automl_id: str,
    image: UploadFile = File(..., description="Image to classify (jpg/png)"),
    user_id: Optional[str] = Form(None),
):
    meta = InferRequestMeta(automl_id=automl_id, user_id=user_id)

    resolver = deps.get_resolver()
    try:
        available = resolver.has_model(meta.automl_id)
    except requests.RequestException as e:
        log.error("record store unreachable: %s", e)
        raise HTTPException(status_code=503, detail=f"record store unreachable: {e}")
    if not available:
        raise HTTPException(status_code=404, detail=f"no trained model for dataset '{meta.automl_id}'")

    raw_bytes = image.file.read()
    if not raw_bytes:
        raise HTTPException(status_code=400, detail="Invalid image: empty upload")

    try:
        controller = deps.get_session_controller(meta.automl_id, UploadPicker(raw_bytes), _close_after_results)
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))

    t0 = time.perf_counter()
    ctx = controller.run(SessionContext(dataset=meta.automl_id, user_id=meta.user_id, image_source="upload"))
    latency_ms = int((time.perf_counter() - t0) * 1000)

    if SessionState.SHOWING_RESULTS not in ctx.transitions:
        detail = ctx.notifications[-1] if ctx.notifications else "inference did not run"
        model_failed = MSG_DOWNLOAD_ERROR in ctx.notifications or MSG_LOAD_ERROR in ctx.notifications
        status_code = 503 if model_failed else 400
        raise HTTPException(status_code=status_code, detail=f"{detail}: {ctx.error}" if ctx.error else detail)

    resp = InferResponse(
        automl_id=meta.automl_id,
        state=ctx.state.value,
        model=ModelInfo(name=ctx.record.name, generated_at=ctx.record.generated_at) if ctx.record else None,
        inferences=[InferenceItem(**i.as_dict()) for i in ctx.inferences],
        display=[i.display_text() for i in ctx.inferences] or ["No matching labels"],
        notifications=ctx.notifications,
        transitions=[s.value for s in ctx.transitions],
        latency_ms=latency_ms,
    )
    return JSONResponse(status_code=200, content=resp.model_dump())
