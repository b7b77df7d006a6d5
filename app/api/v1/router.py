from fastapi import APIRouter

from app.api.v1.endpoints import buyers, health

router = APIRouter(prefix="/api/v1")

router.include_router(buyers.router)
router.include_router(health.router)
