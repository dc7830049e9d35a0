"""Health check endpoints.

Verifies connectivity to the infrastructure services (Neo4j, Redis,
task queue) and reports whether a model endpoint is configured.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from app.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(tags=["health"])


@router.get("/health", response_model=None)
async def health_check(request: Request) -> dict | JSONResponse:
    """Health of each service and overall status (503 when degraded)."""
    checks: dict[str, str] = {}

    # Neo4j
    try:
        driver = request.app.state.neo4j_driver
        async with driver.session() as session:
            result = await session.run("RETURN 1 AS n")
            await result.single()
        checks["neo4j"] = "ok"
    except Exception as e:
        checks["neo4j"] = "error"
        logger.error("health_check_failed", service="neo4j", error=type(e).__name__)

    # Redis
    try:
        await request.app.state.redis.ping()
        checks["redis"] = "ok"
    except Exception as e:
        checks["redis"] = "error"
        logger.error("health_check_failed", service="redis", error=type(e).__name__)

    # Task queue
    checks["task_queue"] = "ok" if request.app.state.arq_pool is not None else "error"

    # Model endpoint (not probed: a probe would cost a request)
    checks["llm"] = "ok" if settings.llm_api_key else "not configured"

    all_ok = all(v == "ok" for v in checks.values() if v != "not configured")
    body = {"status": "healthy" if all_ok else "degraded", "services": checks}

    if not all_ok:
        return JSONResponse(content=body, status_code=503)
    return body


@router.get("/health/ready", response_model=None)
async def readiness_check(request: Request) -> dict | JSONResponse:
    """Quick readiness probe (for k8s / docker healthcheck).

    Returns 503 when not ready so load balancers and orchestrators
    can detect unhealthy instances via HTTP status code.
    """
    try:
        driver = request.app.state.neo4j_driver
        async with driver.session() as session:
            await session.run("RETURN 1")
        return {"ready": True}
    except Exception:
        return JSONResponse(content={"ready": False}, status_code=503)


@router.get("/health/live")
async def liveness_check() -> dict:
    """Lightweight liveness probe. Confirms process is alive."""
    return {"alive": True}
