from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .routers import cable_routing


def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name)

    # Configure CORS
    if settings.frontend_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.frontend_allowed_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Include routers
    app.include_router(cable_routing.router, prefix=settings.api_prefix)
    return app


app = create_app()
