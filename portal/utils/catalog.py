# portal/utils/catalog.py
# Service and sub-service catalog operations
# Sub-services are soft-deleted; services are hard-deleted only when no document refers to them
# RELEVANT FILES: catalog_sync.py, ../routers/services.py, ../models.py

from typing import List
import logging

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..exceptions import NotFoundError
from ..models import ClientService, Document, Service, SubService
from ..schemas import (
    ServiceCreate,
    ServiceDeleteResult,
    ServiceUpdate,
    SubServiceCreate,
    SubServiceUpdate,
)

logger = logging.getLogger(__name__)


# Services


async def list_services(session: AsyncSession, include_inactive: bool = False) -> List[Service]:
    query = select(Service).order_by(Service.created_at.desc())
    if not include_inactive:
        query = query.where(Service.active.is_(True))
    result = await session.execute(query)
    return list(result.scalars().all())


async def get_service(session: AsyncSession, service_id: str) -> Service:
    service = await session.get(Service, service_id)
    if service is None:
        raise NotFoundError("Service not found")
    return service


async def create_service(session: AsyncSession, payload: ServiceCreate) -> Service:
    service = Service(name=payload.name, description=payload.description, active=True)
    session.add(service)
    await session.commit()
    logger.info(f"Created service {service.id} '{service.name}'")
    return service


async def update_service(session: AsyncSession, service_id: str, payload: ServiceUpdate) -> Service:
    service = await get_service(session, service_id)
    for field, value in payload.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(service, field, value)
    await session.commit()
    return service


async def delete_service(session: AsyncSession, service_id: str) -> ServiceDeleteResult:
    """
    Hard delete the service with its sub-services and assignments, unless a
    document refers to one of its sub-services. In that case the service and
    its sub-services are deactivated instead.
    """
    await get_service(session, service_id)

    sub_ids = select(SubService.id).where(SubService.service_id == service_id)
    doc_count = await session.scalar(
        select(func.count(Document.id)).where(Document.sub_service_id.in_(sub_ids))
    )

    try:
        if doc_count:
            await session.execute(
                update(SubService)
                .where(SubService.service_id == service_id)
                .values(active=False)
            )
            await session.execute(
                update(Service).where(Service.id == service_id).values(active=False)
            )
            outcome = ServiceDeleteResult.DEACTIVATED
        else:
            await session.execute(
                delete(ClientService).where(ClientService.service_id == service_id)
            )
            await session.execute(
                delete(SubService).where(SubService.service_id == service_id)
            )
            await session.execute(delete(Service).where(Service.id == service_id))
            outcome = ServiceDeleteResult.DELETED
        await session.commit()
    except Exception:
        await session.rollback()
        logger.exception(f"Failed to delete service {service_id}")
        raise

    logger.info(f"Service {service_id} {outcome.value}")
    return outcome


# Sub-services


async def list_sub_services(session: AsyncSession, service_id: str) -> List[SubService]:
    result = await session.execute(
        select(SubService)
        .where(SubService.service_id == service_id, SubService.active.is_(True))
        .order_by(SubService.created_at.desc())
    )
    return list(result.scalars().all())


async def list_all_sub_services(session: AsyncSession) -> List[SubService]:
    result = await session.execute(
        select(SubService)
        .options(selectinload(SubService.service))
        .where(SubService.active.is_(True))
        .order_by(SubService.created_at.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def get_sub_service(session: AsyncSession, sub_service_id: str) -> SubService:
    sub_service = await session.get(SubService, sub_service_id)
    if sub_service is None:
        raise NotFoundError("Sub-service not found")
    return sub_service


async def create_sub_service(session: AsyncSession, payload: SubServiceCreate) -> SubService:
    await get_service(session, payload.service_id)
    sub_service = SubService(name=payload.name, service_id=payload.service_id, active=True)
    session.add(sub_service)
    await session.commit()
    logger.info(f"Created sub-service {sub_service.id} under service {payload.service_id}")
    return sub_service


async def update_sub_service(
    session: AsyncSession, sub_service_id: str, payload: SubServiceUpdate
) -> SubService:
    sub_service = await get_sub_service(session, sub_service_id)
    for field, value in payload.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(sub_service, field, value)
    await session.commit()
    return sub_service


async def deactivate_sub_service(session: AsyncSession, sub_service_id: str) -> SubService:
    """Soft delete: existing documents keep pointing at the row"""
    sub_service = await get_sub_service(session, sub_service_id)
    sub_service.active = False
    await session.commit()
    logger.info(f"Deactivated sub-service {sub_service_id}")
    return sub_service
