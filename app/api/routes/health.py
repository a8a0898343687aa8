"""
Health API Routes - liveness and readiness checks
"""
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from app.domain.services.health_service import check_readiness

router = APIRouter()


@router.get("/health", summary="Liveness check")
async def health_check() -> dict[str, str]:
    """Process is up; dependencies are not checked"""
    return {"status": "healthy"}


@router.get(
    "/health/ready",
    summary="Readiness check",
    responses={503: {"description": "At least one dependency is unavailable"}},
)
async def readiness_check() -> JSONResponse:
    result = await check_readiness()
    status_code = 200 if result["status"] == "healthy" else 503
    return JSONResponse(content=result, status_code=status_code)
