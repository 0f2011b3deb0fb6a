import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from blog_api.cache import CacheManager
from blog_api.config import settings
from blog_api.database import create_schema, engine
from blog_api.exceptions import register_exception_handlers
from blog_api.middleware import TimingMiddleware
from blog_api.routers import auth, notes, posts, uploads
from blog_api.services.auth_service import UserDirectory
from blog_api.services.media import PUBLIC_PREFIX, ImageStorage

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: build every collaborator once and hand it to the routers
    # through app.state.
    if settings.CREATE_SCHEMA_ON_STARTUP:
        await create_schema()
    app.state.cache = CacheManager(settings.REDIS_URL)
    await app.state.cache.connect()
    app.state.users = UserDirectory.from_settings(settings)
    app.state.media = ImageStorage(settings.UPLOAD_DIR)
    logger.info("Startup complete (env=%s)", settings.APP_ENV)
    yield
    # Shutdown
    await app.state.cache.disconnect()
    await engine.dispose()


app = FastAPI(
    title="Notes & Posts API",
    description="Notes and posts with soft delete, view counters and a Redis read-through cache",
    version="1.0.0",
    lifespan=lifespan,
)

register_exception_handlers(app)

# Middleware
app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
)

# Routers
app.include_router(auth.router)
app.include_router(notes.router)
app.include_router(posts.router)
app.include_router(uploads.router)

app.mount(PUBLIC_PREFIX, StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="uploads")


@app.get("/health")
async def health(request: Request):
    cache = getattr(request.app.state, "cache", None)
    return {
        "status": "healthy",
        "version": "1.0.0",
        "cache": "enabled" if cache is not None and cache.enabled else "disabled",
    }
