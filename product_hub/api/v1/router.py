from fastapi import APIRouter

from product_hub.api.v1.endpoints import assistant, coverages, feeds, proxy

# Create API router
api_router = APIRouter()

# Include routers
api_router.include_router(assistant.router, prefix="/assistant", tags=["Assistant"])
api_router.include_router(proxy.router, prefix="/ai", tags=["AI Proxy"])
api_router.include_router(feeds.router, prefix="/feeds", tags=["Feeds"])
api_router.include_router(coverages.router, tags=["Coverages"])

__all__ = ["api_router"]
