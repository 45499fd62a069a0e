from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from ..runtime import PaneRuntime
from .fastapi_router import router
from .websocket import router as websocket_router


def create_app(runtime: Optional[PaneRuntime] = None, *, prewarm_env: bool = True) -> FastAPI:
    """FastAPI app owning a PaneRuntime for its lifespan."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        rt = runtime or PaneRuntime()
        app.state.pane_runtime = rt
        await rt.start(prewarm_env=prewarm_env)
        try:
            yield
        finally:
            await rt.shutdown()

    app = FastAPI(title="pane_shells", lifespan=lifespan)
    app.include_router(router)
    app.include_router(websocket_router)
    return app


__all__ = ["create_app", "router", "websocket_router"]
