from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import load_config
from .db.database import get_db
from .db.schema import clear_all_data, init_db
from .engines.hooks import HookBus
from .routers import forms, health, settings, submissions
from .scheduler import CleanupScheduler


def create_app(
    db_path: str | Path | None = None,
    hooks: HookBus | None = None,
    run_scheduler: bool = True,
) -> FastAPI:
    app = FastAPI(title="Fern Form API", version=__version__)
    app.state.db_path = db_path
    app.state.hooks = hooks if hooks is not None else HookBus()
    app.state.scheduler = CleanupScheduler(app.state.hooks, db_path)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def startup() -> None:
        init_db(db_path)
        if run_scheduler:
            app.state.scheduler.start()

    @app.on_event("shutdown")
    async def shutdown() -> None:
        await app.state.scheduler.stop()
        conn = get_db(db_path)
        try:
            if load_config(conn, app.state.hooks).clear_on_deactivate:
                clear_all_data(conn)
        finally:
            conn.close()

    app.include_router(health.router)
    app.include_router(forms.router)
    app.include_router(submissions.router)
    app.include_router(settings.router)

    @app.get("/")
    def root():
        return {"message": "Fern Form API", "docs": "/docs"}

    return app


app = create_app()
