from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health() -> Dict[str, Any]:
    """Liveness probe; does not touch the database."""
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}
