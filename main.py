from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import httpx

from core.config import settings
from core.database import create_db_and_tables, engine
from core.logger import get_logger
from routers import auth, branches, payments, shell, staff
from services.cache_storage import InMemoryCacheStorage, SQLCacheStorage
from services.offline_shell import OfflineShell, UpstreamFetcher

logger = get_logger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    create_db_and_tables()

    client = None
    if settings.SHELL_ENABLED:
        client = httpx.AsyncClient(timeout=httpx.Timeout(settings.SHELL_FETCH_TIMEOUT, connect=5.0))
        storage = SQLCacheStorage(engine) if settings.SHELL_PERSISTENT_CACHE else InMemoryCacheStorage()
        app.state.shell = OfflineShell(
            settings.SHELL_CACHE_NAME,
            storage,
            UpstreamFetcher(settings.SHELL_UPSTREAM_URL, client),
        )
        state = await app.state.shell.start()
        logger.info(f"Offline shell {settings.SHELL_CACHE_NAME} is {state.value}")
    else:
        logger.warning("Offline shell disabled. Serving as API only.")

    logger.info("Application started")
    try:
        yield
    finally:
        # Shutdown
        if client is not None:
            await client.aclose()
        logger.info("Application shutting down")

app = FastAPI(title="Tabill", lifespan=lifespan)

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"message": "Internal Server Error"},
    )

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.ALLOWED_ORIGINS.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/healthz", include_in_schema=False)
async def healthz():
    current = getattr(app.state, "shell", None)
    return {"ok": True, "shell": current.state.value if current else None}

# Routers
app.include_router(auth.router)
app.include_router(branches.router)
app.include_router(staff.router)
app.include_router(payments.router)
# Everything else goes through the offline shell
app.include_router(shell.router)
