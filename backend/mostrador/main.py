from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mostrador.core.config import settings
from mostrador.core.errors import register_exception_handlers
from mostrador.core.logging import configure_logging
import mostrador.models  # noqa: F401  # force model registration

from mostrador.api.v1.auth import router as auth_router
from mostrador.api.v1.organizations import router as organizations_router
from mostrador.api.v1.members import router as members_router
from mostrador.api.v1.products import router as products_router
from mostrador.api.v1.dev import router as dev_router


def create_application() -> FastAPI:
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(title="Mostrador API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    @app.get("/")
    def root():
        return {"status": "ok", "service": "mostrador"}

    # Routers
    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(organizations_router, prefix="/api/v1")
    app.include_router(members_router, prefix="/api/v1")
    app.include_router(products_router, prefix="/api/v1")
    app.include_router(dev_router, prefix="/api/v1")

    return app


app = create_application()
