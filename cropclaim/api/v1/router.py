from fastapi import APIRouter

from cropclaim.api.v1.endpoints import admin, ai_tasks, claims, insurer, monitoring

# Create API router
api_router = APIRouter()

# Include routers
api_router.include_router(claims.router, prefix="/claims", tags=["Claims"])
api_router.include_router(admin.router, prefix="/admin", tags=["Admin Review"])
api_router.include_router(insurer.router, prefix="/insurer", tags=["Insurer"])
api_router.include_router(ai_tasks.router, prefix="/ai-tasks", tags=["AI Tasks"])
api_router.include_router(monitoring.router, prefix="/monitoring", tags=["Monitoring"])

__all__ = ["api_router"]
