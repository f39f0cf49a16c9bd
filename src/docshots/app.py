from contextlib import asynccontextmanager

from fastapi import FastAPI

from .api.routes import router as api_router
from .telemetry import init_telemetry, shutdown_telemetry


@asynccontextmanager
async def _lifespan(_app: FastAPI):
    yield
    shutdown_telemetry()


def create_app() -> FastAPI:
    app = FastAPI(title="docshots API", version="0.1.0", lifespan=_lifespan)
    app.include_router(api_router)
    init_telemetry(app)

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    return app


app = create_app()
