from fastapi import APIRouter

from promptverse.api.routes import analysis, auth, billing, brands, credits, health, reports

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(billing.router, prefix="/stripe", tags=["billing"])
api_router.include_router(credits.router, prefix="/credits", tags=["credits"])
api_router.include_router(analysis.router, prefix="/analysis", tags=["analysis"])
api_router.include_router(reports.router, prefix="/reports", tags=["reports"])
api_router.include_router(brands.router, prefix="/brand", tags=["brands"])
