from __future__ import annotations
import os
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import deps
from .routes import router as api_router

logging.basicConfig(
    level=os.getenv("AML_LOG_LEVEL", "INFO"),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
log = logging.getLogger("aml.inference_api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    cfg_path = os.getenv("AML_INFER_CONFIG", "configs/inference.yaml")
    project_root = os.getenv("AML_PROJECT_ROOT", ".")
    deps.init(config_path=cfg_path, project_root=project_root)
    log.info("Inference API started.")
    try:
        yield
    finally:
        deps.shutdown()
        log.info("Inference API stopped.")


def create_app() -> FastAPI:
    app = FastAPI(
        lifespan=lifespan,
        title="AutoML Dataset Inference API",
        version="0.1.0",
        docs_url="/docs",
        openapi_url="/openapi.json",
        description="Lists datasets, reports model training status and classifies images with the latest trained model.",
    )

    allow_origins = os.getenv("AML_CORS_ORIGINS", "")
    if allow_origins:
        origins = [o.strip() for o in allow_origins.split(",") if o.strip()]
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(api_router, prefix="")
    return app


app = create_app()
