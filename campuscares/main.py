"""Campus Cares opportunity service."""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from campuscares.core.config import settings
from campuscares.core.database import create_db_and_tables
from campuscares.core.errors import EngineError
from campuscares.routes import attendance, opportunities, registrations

# Configure logging
log_dir = Path.home() / ".logs" / "campuscares"
log_dir.mkdir(parents=True, exist_ok=True)
log_file = log_dir / "latest.log"

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    filename=str(log_file),
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    logger.info(f"Starting Campus Cares (store backend: {settings.store_backend})")
    if settings.store_backend == "sql":
        create_db_and_tables()
    yield
    logger.info("Campus Cares shut down")


app = FastAPI(
    title=settings.app_name,
    description="Registration, capacity, visibility and approval rules for volunteer opportunities",
    version="0.1.0",
    lifespan=lifespan,
)

# Configure CORS for external access
origins = (
    ["*"]
    if settings.allowed_origins == "*"
    else [o.strip() for o in settings.allowed_origins.split(",")]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, e: EngineError):
    """Render engine errors as ``{"error": code, "detail": message, ...}``."""
    if e.retryable:
        logger.warning(f"{request.method} {request.url.path} failed: {e.message}")
        return JSONResponse(
            status_code=e.status_code, content=e.to_dict(), headers={"Retry-After": "5"}
        )
    return JSONResponse(status_code=e.status_code, content=e.to_dict())


# Include routers
app.include_router(opportunities.router)
app.include_router(registrations.router)
app.include_router(attendance.router)


@app.get("/")
async def root(request: Request):
    """Redirect root to the opportunity listing."""
    rp = request.scope.get("root_path", "")
    return RedirectResponse(f"{rp}/opportunities")


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}
