"""
FastAPI Backend for StarryCam
Upload a photo, get it back painted in the Starry Night style
"""

import io
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Callable, Optional

import torch
import uvicorn
from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict

from core.Errors import DecodeError, ModelUnavailableError
from core.InferencePipeline import InferencePipeline
from utilities.ConfigManager import ConfigManager
from utilities.Logger import Logger

# Setup logging
logger = Logger.setup_logger(log_file="api.log", log_level=logging.INFO)

VERSION = "1.0.0"

# Failure kind -> HTTP status
ERROR_STATUS = {
    DecodeError.kind: 400,
    ModelUnavailableError.kind: 503,
}


class HealthResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    status: str
    timestamp: str
    version: str
    model_loaded: bool
    gpu_available: bool
    load_error: Optional[str] = None


def default_pipeline() -> InferencePipeline:
    config = ConfigManager.load_app_config(os.environ.get("STARRYCAM_CONFIG"))
    Logger.set_level_all(config.level)
    return InferencePipeline.from_config(config)


def create_app(pipeline_factory: Callable[[], InferencePipeline] = default_pipeline) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Loading style pipeline...")
        app.state.pipeline = pipeline_factory()
        yield
        app.state.pipeline.close()

    app = FastAPI(
        title="StarryCam API",
        description="Starry Night neural style transfer for captured photos",
        version=VERSION,
        lifespan=lifespan,
    )

    @app.get("/", response_model=HealthResponse)
    async def health_check(request: Request):
        pipeline = request.app.state.pipeline
        return HealthResponse(
            status="healthy" if pipeline.ready else "degraded",
            timestamp=time.strftime('%Y-%m-%d %H:%M:%S'),
            version=VERSION,
            model_loaded=pipeline.ready,
            gpu_available=torch.cuda.is_available(),
            load_error=getattr(pipeline.model, "load_error", None),
        )

    @app.post("/stylize/")
    async def stylize(request: Request, image: UploadFile = File(..., description="Photo to stylize")):
        data = await image.read()
        if not data:
            raise HTTPException(status_code=400, detail="Uploaded photo is empty")

        result = await request.app.state.pipeline.predict(data)
        if not result.ok:
            status = ERROR_STATUS.get(result.kind, 500)
            logger.error(f"Stylize failed [{result.kind}]: {result.error}")
            raise HTTPException(status_code=status, detail={"error": result.kind, "message": result.error.user_message})

        buffer = io.BytesIO()
        result.image.convert("RGB").save(buffer, format="JPEG", quality=95)
        buffer.seek(0)
        logger.info(f"Stylized '{image.filename}' in {result.inference_time:.3f}s")
        return StreamingResponse(
            buffer,
            media_type="image/jpeg",
            headers={"X-Inference-Time": f"{result.inference_time:.3f}"},
        )

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))
