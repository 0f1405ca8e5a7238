# portal/routers/services.py
# Admin API routes for the service / sub-service catalog and client sync
# Sub-service changes can optionally re-sync the parent service's clients
# RELEVANT FILES: ../utils/catalog.py, ../utils/catalog_sync.py, ../schemas.py

from typing import List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ..deps import get_session, require_admin
from ..schemas import (
    BaseResponse,
    ServiceCreate,
    ServiceResponse,
    ServiceUpdate,
    SubServiceCreate,
    SubServiceResponse,
    SubServiceUpdate,
    SubServiceWithService,
)
from ..utils import catalog
from ..utils.catalog_sync import sync_service_clients

logger = logging.getLogger(__name__)

services_router = APIRouter(
    prefix="/api/admin/services",
    tags=["services"],
    dependencies=[Depends(require_admin)],
)

subservices_router = APIRouter(
    prefix="/api/admin/subservices",
    tags=["subservices"],
    dependencies=[Depends(require_admin)],
)


# Services


@services_router.get("", response_model=List[ServiceResponse])
async def list_services(session: AsyncSession = Depends(get_session)):
    """Active services, newest first"""
    return [ServiceResponse.model_validate(s) for s in await catalog.list_services(session)]


@services_router.post("", response_model=ServiceResponse)
async def create_service(payload: ServiceCreate, session: AsyncSession = Depends(get_session)):
    service = await catalog.create_service(session, payload)
    return ServiceResponse.model_validate(service)


@services_router.put("/{service_id}", response_model=ServiceResponse)
async def update_service(
    service_id: str, payload: ServiceUpdate, session: AsyncSession = Depends(get_session)
):
    service = await catalog.update_service(session, service_id, payload)
    return ServiceResponse.model_validate(service)


@services_router.delete("/{service_id}", response_model=BaseResponse)
async def delete_service(service_id: str, session: AsyncSession = Depends(get_session)):
    """
    Remove a service.
    Deactivated instead of deleted when documents exist under it.
    """
    outcome = await catalog.delete_service(session, service_id)
    return BaseResponse(
        success=True, message=f"Service {outcome.value}", data={"result": outcome.value}
    )


@services_router.post("/{service_id}/sync-clients", response_model=BaseResponse)
async def sync_clients(service_id: str, session: AsyncSession = Depends(get_session)):
    """
    Rebuild assignments for every client of the service so they hold
    exactly the service's active sub-services.
    """
    result = await sync_service_clients(session, service_id)
    return BaseResponse(
        success=True,
        message="Clients synced with current sub-services",
        data=result.model_dump(by_alias=True),
    )


# Sub-services


@subservices_router.get("", response_model=List[SubServiceResponse])
async def list_sub_services(
    service_id: str = Query(..., alias="serviceId", min_length=1),
    session: AsyncSession = Depends(get_session),
):
    """Active sub-services of one service, newest first"""
    subs = await catalog.list_sub_services(session, service_id)
    return [SubServiceResponse.model_validate(s) for s in subs]


@subservices_router.get("/all", response_model=List[SubServiceWithService])
async def list_all_sub_services(session: AsyncSession = Depends(get_session)):
    """Every active sub-service with its parent service"""
    subs = await catalog.list_all_sub_services(session)
    return [SubServiceWithService.model_validate(s) for s in subs]


@subservices_router.post("", response_model=SubServiceResponse)
async def create_sub_service(
    payload: SubServiceCreate,
    sync: bool = Query(False, description="Re-sync the parent service's clients"),
    session: AsyncSession = Depends(get_session),
):
    sub_service = await catalog.create_sub_service(session, payload)
    response = SubServiceResponse.model_validate(sub_service)
    if sync:
        await sync_service_clients(session, payload.service_id)
    return response


@subservices_router.put("/{sub_service_id}", response_model=SubServiceResponse)
async def update_sub_service(
    sub_service_id: str,
    payload: SubServiceUpdate,
    session: AsyncSession = Depends(get_session),
):
    sub_service = await catalog.update_sub_service(session, sub_service_id, payload)
    return SubServiceResponse.model_validate(sub_service)


@subservices_router.delete("/{sub_service_id}", response_model=BaseResponse)
async def delete_sub_service(
    sub_service_id: str,
    sync: bool = Query(False, description="Re-sync the parent service's clients"),
    session: AsyncSession = Depends(get_session),
):
    """Soft delete; documents filed under the sub-service keep their link"""
    sub_service = await catalog.deactivate_sub_service(session, sub_service_id)
    if sync:
        await sync_service_clients(session, sub_service.service_id)
    return BaseResponse(success=True, message="Sub-service deactivated")
