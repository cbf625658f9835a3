import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from testprep import __version__
from testprep.config import settings
from testprep.database import engine, Base, SessionLocal
from testprep.errors import AttemptError, Unauthenticated
from testprep.routes import admin, catalog, test_attempts, user_results
from testprep.seed import seed_demo_catalog
import testprep.models  # noqa: F401  register all tables on Base.metadata

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    version=__version__,
    debug=settings.DEBUG
)

# CORS configuration - allow frontend URL from environment or default to all origins
allowed_origins = [settings.FRONTEND_URL] if settings.FRONTEND_URL != "*" else ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AttemptError)
async def attempt_error_handler(request: Request, exc: AttemptError):
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
        headers=headers
    )


@app.on_event("startup")
async def startup_event():
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")

    if settings.SEED_DEMO_DATA:
        db = SessionLocal()
        try:
            seed_demo_catalog(db)
        finally:
            db.close()


app.include_router(catalog.router)
app.include_router(test_attempts.router)
app.include_router(user_results.router)
app.include_router(admin.router)


@app.get("/")
async def root():
    return {
        "message": "Test Prep Attempt Engine API",
        "version": __version__,
        "status": "running",
        "docs": "/docs",
        "health": "/health"
    }


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": settings.APP_NAME
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "testprep.main:app",
        host="127.0.0.1",
        port=8001,
        reload=False
    )
