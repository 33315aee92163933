"""Health check and system endpoints."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database import get_db_session
from src.core.settings import get_settings
from src.schemas.base import HealthCheckResponse
from src.utils.dates import utcnow

router = APIRouter()
settings = get_settings()

SERVICE_NAME = "account-core-service"
SERVICE_VERSION = "1.0.0"

EXPECTED_TABLES = ("accounts", "account_usage", "plan_settings", "upgrade_requests")


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(session: AsyncSession = Depends(get_db_session)):
    """
    Service health check endpoint.

    Checks database connectivity. The service has no other runtime
    dependencies.
    """
    health_data = {
        "status": "healthy",
        "timestamp": utcnow(),
        "version": SERVICE_VERSION,
        "environment": settings.environment,
        "dependencies": {}
    }

    try:
        result = await session.execute(text("SELECT 1 as health_check"))
        row = result.fetchone()
        if not row or row[0] != 1:
            raise RuntimeError("Unexpected database response")
        health_data["dependencies"]["database"] = {
            "status": "healthy",
            "details": "Connection successful"
        }
    except Exception as e:
        health_data["dependencies"]["database"] = {
            "status": "unhealthy",
            "error": str(e),
            "details": "Database connection failed"
        }
        health_data["status"] = "unhealthy"

    if health_data["status"] == "unhealthy":
        raise HTTPException(status_code=503, detail=health_data["dependencies"]["database"]["details"])

    return HealthCheckResponse(**health_data)


@router.get("/health/database")
async def database_health(session: AsyncSession = Depends(get_db_session)):
    """Detailed database health check, including the presence of the service tables."""
    try:
        await session.execute(text("SELECT 1"))
        connection = await session.connection()
        tables = await connection.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
    except Exception as e:
        raise HTTPException(
            status_code=503,
            detail=f"Database unavailable: {e}"
        )

    missing = [name for name in EXPECTED_TABLES if name not in tables]
    return {
        "status": "healthy" if not missing else "degraded",
        "timestamp": utcnow().isoformat(),
        "details": {
            "connectivity": "ok",
            "dialect": session.get_bind().dialect.name,
            "tables": [name for name in EXPECTED_TABLES if name in tables],
            "missing_tables": missing,
        }
    }


@router.get("/version")
async def version_info():
    """Get service version information."""
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "environment": settings.environment,
        "api_version": "v1",
    }
