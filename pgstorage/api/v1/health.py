"""
Health check endpoints for monitoring and orchestration.
Provides liveness and readiness probes.
"""
from datetime import datetime

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from pgstorage.config.settings import settings
from pgstorage.services.kube_client import KubeClient, get_kube_client

router = APIRouter()


@router.get("/")
async def health_check():
    """
    Basic health check endpoint.
    Returns current status and version.
    """
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("/live")
async def liveness():
    """
    Kubernetes liveness probe.
    Indicates whether the application should be restarted.
    """
    return {"status": "alive", "timestamp": datetime.utcnow().isoformat()}


@router.get("/ready")
def readiness(kube: KubeClient = Depends(get_kube_client)):
    """
    Kubernetes readiness probe.
    Checks that the Kubernetes API server answers.
    """
    if not kube.ping():
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "kubernetes": "unhealthy",
                "timestamp": datetime.utcnow().isoformat(),
            },
        )

    return {
        "status": "ready",
        "kubernetes": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
    }
