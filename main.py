# © [2025] EDT&Partners. Licensed under CC BY 4.0.

from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from logging_config import setup_logging
from database.db import init_db, get_session_local
from lti.config import ToolSettings, load_settings
from lti.keys import RemoteKeySet, KeySetPublisher
from lti.secrets import SecretCipher
from lti.services import LoginHandshake, LaunchValidator, DeepLinkingResponder
from lti.tokens import build_token_verifier
from lti.router import router as lti_router
from routers.dashboard import router as dashboard_router
from routers.chat import router as chat_router
from routers.health import router as health_router
from startup import run_startup_tasks

logger = setup_logging(module_name='main')


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting application lifespan...")
    db = get_session_local()()
    try:
        await run_startup_tasks(db)
    except Exception as e:
        logger.error(f"Critical error during application startup: {str(e)}")
        # Re-raise the exception to prevent the application from starting with errors
        raise
    finally:
        db.close()

    logger.info("Application startup completed, yielding control...")
    yield

    logger.info("Application shutdown initiated...")


def configure_components(app: FastAPI, settings: ToolSettings) -> None:
    """Build every LTI component once from the settings and expose them on app.state"""
    key_set = RemoteKeySet(settings.key_set_url)
    verifier = build_token_verifier(settings, key_set)
    if not settings.is_production and settings.allow_unverified_dev_tokens:
        logger.warning(f"Unverified development tokens are accepted ({settings.environment})")

    app.state.settings = settings
    app.state.cipher = SecretCipher(settings.encryption_secret)
    app.state.key_set = key_set
    app.state.token_verifier = verifier
    app.state.login_handshake = LoginHandshake(settings)
    app.state.launch_validator = LaunchValidator(verifier)
    app.state.key_set_publisher = KeySetPublisher(settings.public_key, settings.kid)
    app.state.deep_linking = DeepLinkingResponder(settings)


def create_app(settings: Optional[ToolSettings] = None) -> FastAPI:
    settings = settings or load_settings()
    init_db(settings.database_url)

    app = FastAPI(
        lifespan=lifespan,
        openapi_tags=[
            {"name": "LTI", "description": "LTI 1.3 login, launch and key set"},
            {"name": "Dashboard", "description": "Instructor course setup"},
            {"name": "Chat", "description": "Course AI assistant"},
            {"name": "Health", "description": "Service health"}
        ]
    )
    configure_components(app, settings)

    app.include_router(lti_router, prefix="/lti", tags=["LTI"])
    app.include_router(dashboard_router, prefix="/api/dashboard", tags=["Dashboard"])
    app.include_router(chat_router, prefix="/api/chat", tags=["Chat"])
    app.include_router(health_router, tags=["Health"])

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.issuer],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add middleware for request logging
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info(f"Request: {request.method} {request.url.path}")
        try:
            response = await call_next(request)
            logger.info(f"Response status: {response.status_code}")
            return response
        except Exception as e:
            logger.error(f"Request failed: {str(e)}")
            raise

    @app.get("/")
    def read_root():
        return {"status": "API is up and running", "version": "1.0.0"}

    return app


if __name__ == "__main__":
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
