# sentinelmind/main.py
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import time

from .config import Settings, get_settings
from .routes import biometrics, scan
from .services.biometric_verifier import BiometricVerifier
from .services.face_presence import FacePresenceDetector
from .services.perceptual_hash import PerceptualHashGenerator
from .services.reference_lists import ReferenceListService
from .services.template_store import SqliteTemplateStore
from .services.typosquatting import TyposquattingDetector

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the API around one set of engine services"""
    settings = settings or get_settings()
    logging.getLogger().setLevel(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("SentinelMind engine starting up...")

        detector = TyposquattingDetector(
            low_bound=settings.typosquat_low_bound,
            high_bound=settings.typosquat_high_bound,
        )
        app.state.settings = settings
        app.state.typosquat_detector = detector
        app.state.reference_service = ReferenceListService(
            data_dir=settings.data_dir,
            reload_interval=settings.reference_reload_interval,
            detector=detector,
        )
        logger.info("Reference lists initialized")

        store = SqliteTemplateStore(settings.template_db)
        app.state.template_store = store
        app.state.verifier = BiometricVerifier(
            store,
            generator=PerceptualHashGenerator(
                resolution=settings.phash_resolution,
                stride=settings.phash_stride,
                threshold=settings.phash_threshold,
            ),
            acceptance_threshold=settings.acceptance_threshold,
        )
        app.state.presence_detector = FacePresenceDetector(
            min_ratio=settings.presence_min_ratio,
            max_ratio=settings.presence_max_ratio,
        )
        logger.info(f"Biometric verifier initialized (template store at {store.db_path})")

        yield

        logger.info("SentinelMind engine shutting down...")
        try:
            store.close()
        except Exception as e:
            logger.error(f"Error during shutdown: {e}")

    app = FastAPI(
        title="SentinelMind Detection Engine",
        description="Local phishing heuristics and facial biometric verification",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS must come before routes to handle OPTIONS preflight
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests with timing"""
        start_time = time.time()
        logger.info(f"Request: {request.method} {request.url.path}")

        response = await call_next(request)

        process_time = time.time() - start_time
        logger.info(f"Response: {response.status_code} - {process_time:.3f}s")
        return response

    app.include_router(scan.router, tags=["scan"])
    app.include_router(biometrics.router, tags=["biometrics"])

    @app.get("/")
    async def root():
        """Service descriptor"""
        return {
            "service": "SentinelMind Detection Engine",
            "version": VERSION,
            "status": "healthy",
            "features": [
                "url_heuristics",
                "email_heuristics",
                "typosquatting",
                "facial_biometrics",
            ],
            "endpoints": {
                "scan_url": "/api/scan/url",
                "scan_email": "/api/scan/email",
                "typosquat": "/api/scan/typosquat",
                "lists": "/api/scan/lists",
                "enroll": "/api/biometrics/{owner_id}/enroll",
                "verify": "/api/biometrics/{owner_id}/verify",
            },
        }

    @app.get("/health")
    async def health():
        """Simple health check"""
        return {"status": "ok"}

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Catch-all exception handler"""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if settings.debug else "An error occurred",
            }
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "sentinelmind.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
