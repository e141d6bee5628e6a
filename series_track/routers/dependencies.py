"""Shared FastAPI dependencies for the API routers."""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from ..services.catalog import CatalogService
from ..services.provider import MetadataProvider
from ..services.sync import SyncService


def get_provider(request: Request) -> MetadataProvider:
    """Get the metadata provider created at startup."""
    return request.app.state.provider


def get_sync_service(provider: MetadataProvider = Depends(get_provider)) -> SyncService:
    return SyncService(provider)


def get_catalog_service(sync: SyncService = Depends(get_sync_service)) -> CatalogService:
    return CatalogService(sync)


def get_optional_user_id(x_user_id: Optional[int] = Header(None)) -> Optional[int]:
    """User id from the X-User-Id header, if the caller sent one."""
    return x_user_id


def get_current_user_id(user_id: Optional[int] = Depends(get_optional_user_id)) -> int:
    """User id from the X-User-Id header; 401 without it."""
    if user_id is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user_id
