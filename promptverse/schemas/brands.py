"""Brand Pydantic schemas."""

from datetime import datetime

from promptverse.schemas.base import CamelModel


class SaveBrandRequest(CamelModel):
    brand_name: str | None = None
    website_url: str | None = None
    favicon: str | None = None


class BrandResponse(CamelModel):
    id: str
    user_id: str
    brand_name: str
    website_url: str
    favicon: str | None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class BrandListResponse(CamelModel):
    data: list[BrandResponse]


class DeletedCounts(CamelModel):
    reports: int
    schedules: int


class DeleteBrandResponse(CamelModel):
    message: str
    deleted_data: DeletedCounts
