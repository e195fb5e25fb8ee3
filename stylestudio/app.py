# stylestudio/app.py

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response

from config.settings import settings
from .errors import AlbumIncomplete, InvalidImageFormat
from .model import (
    AlbumResponse,
    ItemView,
    RemixRequest,
    RunState,
    StartRunRequest,
    WorkItem,
)
from .utils import encode_data_uri
from .worker import StyleOrchestrator

logger = logging.getLogger(__name__)


def item_view(item: WorkItem) -> ItemView:
    return ItemView(
        label=item.label,
        status=item.status,
        image_url=encode_data_uri(item.image) if item.image else None,
        error_message=item.error_message,
    )


def run_state(orchestrator: StyleOrchestrator) -> RunState:
    return RunState(
        category=orchestrator.category,
        running=orchestrator.is_running,
        items={label: item_view(item) for label, item in orchestrator.items().items()},
    )


def get_orchestrator(request: Request) -> StyleOrchestrator:
    return request.app.state.orchestrator


def create_app(orchestrator: Optional[StyleOrchestrator] = None) -> FastAPI:
    """
    Without an orchestrator one is built from settings at startup;
    a missing GEMINI_API_KEY stops the service from starting.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "orchestrator", None) is None:
            app.state.orchestrator = StyleOrchestrator.from_settings(settings)
        yield
        await app.state.orchestrator.join()

    app = FastAPI(title="Hairstyle Studio", lifespan=lifespan)
    app.state.orchestrator = orchestrator

    @app.post("/runs", response_model=RunState, status_code=202)
    async def start_run(
        req: StartRunRequest, orch: StyleOrchestrator = Depends(get_orchestrator)
    ):
        try:
            orch.start_run(req.category, req.image)
        except InvalidImageFormat as e:
            raise HTTPException(status_code=400, detail=str(e))
        return run_state(orch)

    @app.get("/items", response_model=RunState)
    async def list_items(orch: StyleOrchestrator = Depends(get_orchestrator)):
        return run_state(orch)

    @app.get("/items/{label}", response_model=ItemView)
    async def get_item(label: str, orch: StyleOrchestrator = Depends(get_orchestrator)):
        item = orch.get_item(label)
        if item is None:
            raise HTTPException(status_code=404, detail=f"Unknown style: {label}")
        return item_view(item)

    @app.post("/items/{label}/retry", response_model=ItemView, status_code=202)
    async def retry_item(label: str, orch: StyleOrchestrator = Depends(get_orchestrator)):
        if orch.get_item(label) is None:
            raise HTTPException(status_code=404, detail=f"Unknown style: {label}")
        if orch.retry_item(label) is None:
            raise HTTPException(status_code=409, detail=f"{label} is already being generated")
        return item_view(orch.get_item(label))

    @app.post("/items/{label}/remix", response_model=ItemView, status_code=202)
    async def remix_item(
        label: str, req: RemixRequest, orch: StyleOrchestrator = Depends(get_orchestrator)
    ):
        if orch.get_item(label) is None:
            raise HTTPException(status_code=404, detail=f"Unknown style: {label}")
        if orch.remix_item(label, req.prompt) is None:
            raise HTTPException(
                status_code=409,
                detail=f"{label} cannot be remixed now (no finished image, still pending or empty prompt)",
            )
        return item_view(orch.get_item(label))

    @app.get("/album", response_model=AlbumResponse)
    def album(orch: StyleOrchestrator = Depends(get_orchestrator)):
        try:
            page = orch.album()
        except AlbumIncomplete as e:
            raise HTTPException(status_code=409, detail=str(e))
        return AlbumResponse(image_url=encode_data_uri(page))

    @app.delete("/session", status_code=204)
    async def reset_session(orch: StyleOrchestrator = Depends(get_orchestrator)):
        orch.reset()
        return Response(status_code=204)

    return app


app = create_app()


def serve() -> None:
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    uvicorn.run(app, host="127.0.0.1", port=8000)
