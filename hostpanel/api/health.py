from datetime import datetime, timezone

from fastapi import APIRouter

router = APIRouter()


@router.get("", summary="Liveness")
async def health() -> dict:
    """Liveness probe for the panel process itself; no authentication, no I/O."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}
