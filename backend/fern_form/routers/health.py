from datetime import datetime, timezone

from fastapi import APIRouter

from .. import __version__

router = APIRouter()


@router.get("/health")
def health_check():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/ready")
def readiness_check():
    return {"ready": True, "version": __version__}
