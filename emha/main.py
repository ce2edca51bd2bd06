import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import database, models  # noqa: F401
from .backend.errors import BackendError
from .config import ALLOWED_ORIGINS, DB_SCHEMA
from .domain.admin.router import router as admin_router
from .domain.profiles.router import router as profiles_router
from .schema.catalog import ensure_catalog_tables
from .schema.channel import EngineSqlChannel
from .schema.reconcile import SchemaReconciler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    if database.engine is not None and database.engine.dialect.name == "postgresql":
        # The catalog owns the Postgres tables, with their triggers and auth.users keys
        reconciler = SchemaReconciler(EngineSqlChannel(database.engine), schema=DB_SCHEMA)
        for result in ensure_catalog_tables(reconciler):
            if not result.success:
                logger.error(f"Failed to prepare table {result.table}: {result.error}")
        logger.info("Database tables reconciled")
    elif database.engine is not None:
        try:
            database.Base.metadata.create_all(bind=database.engine, checkfirst=True)
            logger.info("Database tables created successfully")
        except Exception as e:
            # Another worker may have created the tables first
            error_msg = str(e)
            if "already exists" in error_msg or "duplicate key" in error_msg:
                logger.info("Database tables already exist (created by another worker)")
            else:
                logger.error(f"Failed to create database tables: {e}")
    else:
        logger.info("No DATABASE_URL configured, using the backend REST API")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="EMHA API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(BackendError)
async def backend_exception_handler(request: Request, exc: BackendError):
    """Surface backend failures with their message/code/details payload"""
    logger.error(f"{request.method} {request.url.path} - Backend error: {exc.message}")
    return JSONResponse(
        status_code=502,
        content={"detail": exc.message, "error": exc.to_dict()},
    )


logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["*"],
)

# Routes
app.include_router(profiles_router)
app.include_router(admin_router)


@app.get("/")
def root():
    return {"message": "EMHA API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
