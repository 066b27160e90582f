from contextlib import asynccontextmanager

from fastapi import FastAPI

from taletree.config import Settings, load_settings
from taletree.controller import SessionController
from taletree.llm import GeminiNarrator, Narrator
from taletree.routes import router
from taletree.storage import JsonFileStore, KeyValueStore, SessionStore


def build_controller(
    settings: Settings,
    narrator: Narrator | None = None,
    store: KeyValueStore | None = None,
) -> SessionController:
    """Wire a controller from settings, with optional overrides for tests."""
    if narrator is None:
        narrator = GeminiNarrator(
            api_key=settings.api_key,
            model=settings.model,
            base_url=settings.base_url,
            timeout=settings.timeout,
        )
    if store is None:
        store = JsonFileStore(settings.data_dir)
    return SessionController(narrator, SessionStore(store))


def create_app(
    settings: Settings | None = None,
    narrator: Narrator | None = None,
    store: KeyValueStore | None = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        resolved = settings or load_settings()
        controller = build_controller(resolved, narrator, store)
        controller.bootstrap()
        app.state.controller = controller
        yield
        await controller.aclose()

    app = FastAPI(title="TaleTree", lifespan=lifespan)
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (settings come from the environment)
app = create_app()
