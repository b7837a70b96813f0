"""
FastAPI server for the Discovery Service.

Exposes:
  - GET /health - Health check
  - GET /v2/matching/discover - Ranked discovery batch
  - POST /v2/matching/swipe - Record SKIP / INTERESTED
  - POST /v2/matching/connection-sent - Attach a created connection to a swipe
  - GET /v2/matching/stats - Swipe statistics
  - GET /docs - Interactive API documentation (Swagger UI)
"""

from dotenv import load_dotenv
load_dotenv()

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status, Header
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Any, Annotated, Dict, Optional
import time

# Import configuration (loads .env automatically)
from discovery_engine.config import config, validate_config

# Import logging setup
from discovery_engine.utils.logging_config import logger, setup_logging

from discovery_engine.engine import DiscoveryEngine, create_engine
from discovery_engine.utils.errors import (
    InvalidInputError,
    NotFoundError,
    StoreUnavailableError,
)

# Setup logging
setup_logging(debug=config.DEBUG, log_file=config.LOG_FILE)

# ============================================================
# VALIDATE CONFIGURATION AT STARTUP
# ============================================================
try:
    config_status = validate_config()
    logger.info("Configuration validated successfully")
    for key, value in config_status.items():
        logger.info(f"  {key}: {value}")
except ValueError as e:
    logger.error(f"Configuration error: {e}")
    exit(1)

# ============================================================
# FASTAPI APPLICATION
# ============================================================
app = FastAPI(
    title="Discovery Service",
    description="Candidate discovery, ranking, and swipe tracking for social matching",
    version="1.0.0",
)

# ============================================================
# CORS CONFIGURATION
# ============================================================
origins = [
    "http://localhost:5173",  # Vite dev
    "http://localhost:3000",  # React/Next dev
    "http://localhost:5001",  # API gateway dev origin
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================================
# ENGINE
# ============================================================
_engine: Optional[DiscoveryEngine] = None


def get_engine() -> DiscoveryEngine:
    """Build the engine once from config; overridable in tests."""
    global _engine

    if _engine is None:
        _engine = create_engine(config)
    return _engine


# ============================================================
# REQUEST/RESPONSE MODELS
# ============================================================
class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SwipeRequest(ApiModel):
    """
    Request body for /v2/matching/swipe.

    Attributes:
        target_user_id (str): User being swiped on.
        action (str): 'SKIP' or 'INTERESTED'. Validated by the engine.
        session_id (Optional[str]): Discovery session, for counters only.
    """
    target_user_id: str
    action: str
    session_id: Optional[str] = None


class ConnectionSentRequest(ApiModel):
    target_user_id: str
    connection_id: str


class ApiResponse(BaseModel):
    """
    Response envelope shared by all matching routes.

    Attributes:
        success (bool): Whether the operation succeeded
        data (Any): Operation output
        message (str): Human-readable summary
    """
    success: bool = True
    data: Any = None
    message: str = ""


# ============================================================
# MIDDLEWARE
# ============================================================
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """
    Middleware to track request processing time.

    Adds X-Process-Time header to all responses showing how long request took.
    """
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response


# ============================================================
# DEPENDENCIES
# ============================================================
def get_requester_id(
    authorization: Annotated[Optional[str], Header()] = None,
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> str:
    """
    Resolve the requesting user from upstream headers.

    Authentication happens upstream; this service only checks the shared
    service token (when configured) and reads X-User-Id.
    """
    if config.SERVICE_TOKEN:
        expected = f"Bearer {config.SERVICE_TOKEN}"
        if authorization != expected:
            logger.warning("Unauthorized request: invalid or missing token")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Unauthorized",
            )

    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return x_user_id


# ============================================================
# ROUTES
# ============================================================

@app.get("/health", tags=["System"])
async def health_check() -> Dict[str, str]:
    """
    Health check endpoint.

    Returns:
        dict: {"status": "healthy"}
    """
    return {"status": "healthy"}


@app.get("/v2/matching/discover", response_model=ApiResponse, tags=["Matching"])
def get_discovery_users(
    requester_id: Annotated[str, Depends(get_requester_id)],
    engine: Annotated[DiscoveryEngine, Depends(get_engine)],
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    distance: Optional[float] = None,
    min_age: Annotated[Optional[int], Query(alias="minAge")] = None,
    max_age: Annotated[Optional[int], Query(alias="maxAge")] = None,
    gender: Optional[str] = None,
    interests: Optional[str] = None,
    city: Optional[str] = None,
    only_verified: Annotated[bool, Query(alias="onlyVerified")] = False,
    min_trust_score: Annotated[Optional[float], Query(alias="minTrustScore")] = None,
    limit: Optional[int] = None,
    session_id: Annotated[Optional[str], Query(alias="sessionId")] = None,
) -> ApiResponse:
    """
    Return a ranked batch of candidates.

    Weighted scoring: location 30, interests 25, communities 20, trust 15,
    verification 10. Pass the returned sessionId on follow-up calls so the
    same candidates are not shown twice.
    """
    if (latitude is None) != (longitude is None):
        raise InvalidInputError("latitude and longitude must be sent together")

    filters = {
        "minAge": min_age,
        "maxAge": max_age,
        "distance": distance,
        "gender": gender,
        "interests": [i.strip() for i in interests.split(",") if i.strip()] if interests else [],
        "city": city,
        "onlyVerified": only_verified,
        "minTrustScore": min_trust_score,
        "limit": limit,
    }
    origin = (
        {"latitude": latitude, "longitude": longitude}
        if latitude is not None
        else None
    )

    batch = engine.get_discovery_batch(requester_id, filters, origin, session_id)
    return ApiResponse(
        data=batch.model_dump(by_alias=True, mode="json"),
        message="Discovery users retrieved successfully",
    )


@app.post("/v2/matching/swipe", response_model=ApiResponse, tags=["Matching"])
def record_swipe(
    request: SwipeRequest,
    requester_id: Annotated[str, Depends(get_requester_id)],
    engine: Annotated[DiscoveryEngine, Depends(get_engine)],
) -> ApiResponse:
    """Record a SKIP or INTERESTED swipe. After 3 SKIPs the user is not shown again."""
    result = engine.record_swipe(
        requester_id, request.target_user_id, request.action, request.session_id
    )
    return ApiResponse(
        data=result.model_dump(by_alias=True, mode="json"),
        message="Swipe recorded successfully",
    )


@app.post("/v2/matching/connection-sent", response_model=ApiResponse, tags=["Matching"])
def mark_connection_sent(
    request: ConnectionSentRequest,
    requester_id: Annotated[str, Depends(get_requester_id)],
    engine: Annotated[DiscoveryEngine, Depends(get_engine)],
) -> ApiResponse:
    """Mark the INTERESTED swipe on targetUserId as having produced a connection."""
    engine.mark_connection_sent(
        requester_id, request.target_user_id, request.connection_id
    )
    return ApiResponse(data=None, message="Connection status updated")


@app.get("/v2/matching/stats", response_model=ApiResponse, tags=["Matching"])
def get_swipe_stats(
    requester_id: Annotated[str, Depends(get_requester_id)],
    engine: Annotated[DiscoveryEngine, Depends(get_engine)],
) -> ApiResponse:
    stats = engine.get_swipe_stats(requester_id)
    return ApiResponse(
        data=stats.model_dump(by_alias=True, mode="json"),
        message="Swipe statistics retrieved successfully",
    )


# ============================================================
# ERROR HANDLERS
# ============================================================

def _error_response(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": detail,
            "status_code": status_code,
        },
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    logger.info(f"Not found: {exc}")
    return _error_response(status.HTTP_404_NOT_FOUND, str(exc))


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError):
    logger.info(f"Invalid input: {exc}")
    return _error_response(status.HTTP_400_BAD_REQUEST, str(exc))


@app.exception_handler(StoreUnavailableError)
async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
    logger.error(f"Store unavailable: {exc}")
    return _error_response(status.HTTP_503_SERVICE_UNAVAILABLE, "Storage unavailable")


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Handle HTTP exceptions with consistent error response format.
    """
    logger.error(f"HTTP Exception: {exc.status_code} - {exc.detail}")
    return _error_response(exc.status_code, exc.detail)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """
    Handle unexpected exceptions.

    Never returns the exception message to the client; use logging instead.
    """
    logger.error(f"Unhandled exception: {str(exc)}")
    logger.exception("Full traceback:")
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


# ============================================================
# STARTUP EVENTS
# ============================================================

@app.on_event("startup")
async def startup_event():
    """
    Run when the application starts.

    Configuration is already validated above (in module-level code),
    but we log it again here for visibility.
    """
    logger.info("=" * 60)
    logger.info("Discovery Service Starting Up")
    logger.info("=" * 60)
    logger.info(f"Storage backend: {config.STORAGE_BACKEND}")
    logger.info(f"Debug Mode: {config.DEBUG}")
    logger.info(f"Batch size: {config.DEFAULT_BATCH_SIZE} (max {config.MAX_BATCH_SIZE})")
    logger.info(f"Skip threshold: {config.SKIP_THRESHOLD}")
    logger.info("=" * 60)


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Discovery Service Shutting Down")


# ============================================================
# ENTRY POINT
# ============================================================

if __name__ == "__main__":
    """
    Run with: python -m uvicorn discovery_engine.server:app --reload
    """
    import uvicorn
    uvicorn.run(
        app,
        host=config.HOST,
        port=config.PORT,
        log_level="info" if not config.DEBUG else "debug"
    )
