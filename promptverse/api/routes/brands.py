"""Brand routes — save, list, fetch, and cascade delete."""

from fastapi import APIRouter, Depends

from promptverse.api.errors import http_error
from promptverse.core.auth import AuthUser, require_auth
from promptverse.core.exceptions import PromptVerseError
from promptverse.db.base import get_session_factory
from promptverse.schemas.brands import (
    BrandListResponse,
    BrandResponse,
    DeleteBrandResponse,
    DeletedCounts,
    SaveBrandRequest,
)
from promptverse.services.brand_service import BrandService

router = APIRouter()


def get_brand_service() -> BrandService:
    """Dependency that provides BrandService. Override in tests via app.dependency_overrides."""
    return BrandService(get_session_factory())


@router.post("/save", response_model=BrandResponse, status_code=201)
async def save_brand(
    body: SaveBrandRequest,
    user: AuthUser = Depends(require_auth),
    service: BrandService = Depends(get_brand_service),
):
    try:
        brand = await service.save_brand(user.user_id, body.brand_name, body.website_url, body.favicon)
    except PromptVerseError as exc:
        raise http_error(exc)
    return BrandResponse.model_validate(brand)


@router.get("/list", response_model=BrandListResponse)
async def list_brands(
    user: AuthUser = Depends(require_auth),
    service: BrandService = Depends(get_brand_service),
):
    """Active brands, newest first."""
    brands = await service.list_brands(user.user_id)
    return BrandListResponse(data=[BrandResponse.model_validate(b) for b in brands])


@router.get("/{brand_id}", response_model=BrandResponse)
async def get_brand(
    brand_id: str,
    user: AuthUser = Depends(require_auth),
    service: BrandService = Depends(get_brand_service),
):
    try:
        brand = await service.get_brand(user.user_id, brand_id)
    except PromptVerseError as exc:
        raise http_error(exc)
    return BrandResponse.model_validate(brand)


@router.delete("/{brand_id}", response_model=DeleteBrandResponse)
async def delete_brand(
    brand_id: str,
    user: AuthUser = Depends(require_auth),
    service: BrandService = Depends(get_brand_service),
):
    """Delete a brand along with its reports and scheduled prompts."""
    try:
        deleted = await service.delete_brand(user.user_id, brand_id)
    except PromptVerseError as exc:
        raise http_error(exc)
    return DeleteBrandResponse(
        message="Brand and all associated data deleted successfully",
        deleted_data=DeletedCounts(**deleted),
    )
