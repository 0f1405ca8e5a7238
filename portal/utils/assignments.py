# portal/utils/assignments.py
# Client-to-service assignment helpers
# Assignments behave as a set of (client, service, sub-service) triples
# RELEVANT FILES: catalog_sync.py, client_admin.py, ../routers/client_services.py

from typing import List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..exceptions import ConflictError, NotFoundError, ValidationFailure
from ..models import Client, ClientService, Service, SubService
from .catalog_sync import get_active_sub_services

logger = logging.getLogger(__name__)


def assignment_loaders():
    return (
        selectinload(ClientService.service),
        selectinload(ClientService.sub_service),
    )


async def resolve_service_target(
    session: AsyncSession, service_id: str, sub_service_id: Optional[str]
) -> tuple[Service, Optional[SubService]]:
    """Check the service exists and the active sub-service (if any) belongs to it"""
    service = await session.get(Service, service_id)
    if service is None:
        raise NotFoundError("Service not found")

    sub_service = None
    if sub_service_id:
        sub_service = await session.get(SubService, sub_service_id)
        if sub_service is None or not sub_service.active:
            raise NotFoundError("Sub-service not found")
        if sub_service.service_id != service.id:
            raise ValidationFailure("Sub-service does not belong to the service")
    return service, sub_service


async def assignment_exists(
    session: AsyncSession,
    client_id: str,
    service_id: str,
    sub_service_id: Optional[str],
) -> bool:
    sub_clause = (
        ClientService.sub_service_id.is_(None)
        if sub_service_id is None
        else ClientService.sub_service_id == sub_service_id
    )
    result = await session.execute(
        select(ClientService.id).where(
            ClientService.client_id == client_id,
            ClientService.service_id == service_id,
            sub_clause,
        )
    )
    return result.first() is not None


async def add_assignment(
    session: AsyncSession,
    client_id: str,
    service_id: str,
    sub_service_id: Optional[str] = None,
) -> ClientService:
    """
    Insert one assignment row; the caller commits.
    Raises ConflictError if the same triple already exists.
    """
    sub_service_id = sub_service_id or None
    if await assignment_exists(session, client_id, service_id, sub_service_id):
        raise ConflictError("Client is already assigned to this service")

    row = ClientService(
        client_id=client_id, service_id=service_id, sub_service_id=sub_service_id
    )
    session.add(row)
    await session.flush()
    return row


async def assign_client_service(
    session: AsyncSession,
    client_id: str,
    service_id: str,
    sub_service_id: Optional[str] = None,
) -> ClientService:
    """Validate and persist a manual assignment"""
    client = await session.get(Client, client_id)
    if client is None:
        raise NotFoundError("Client not found")
    await resolve_service_target(session, service_id, sub_service_id)

    row = await add_assignment(session, client_id, service_id, sub_service_id)
    await session.commit()
    logger.info(
        f"Assigned client {client_id} to service {service_id} "
        f"(sub-service {sub_service_id or 'none'})"
    )
    return await get_assignment(session, row.id)


async def assign_initial_services(
    session: AsyncSession,
    client_id: str,
    service_id: str,
    sub_service_id: Optional[str] = None,
) -> List[ClientService]:
    """
    Onboarding assignment; the caller commits.
    A chosen sub-service is assigned alone. Without one, every active
    sub-service is assigned, or a service-level row when there are none.
    """
    await resolve_service_target(session, service_id, sub_service_id)

    if sub_service_id:
        targets: List[Optional[str]] = [sub_service_id]
    else:
        active = await get_active_sub_services(session, service_id)
        targets = [s.id for s in active] or [None]

    return [await add_assignment(session, client_id, service_id, t) for t in targets]


async def get_assignment(session: AsyncSession, assignment_id: str) -> ClientService:
    result = await session.execute(
        select(ClientService)
        .options(*assignment_loaders())
        .where(ClientService.id == assignment_id)
        .execution_options(populate_existing=True)
    )
    row = result.scalars().first()
    if row is None:
        raise NotFoundError("Assignment not found")
    return row


async def list_client_assignments(session: AsyncSession, client_id: str) -> List[ClientService]:
    result = await session.execute(
        select(ClientService)
        .options(*assignment_loaders())
        .where(ClientService.client_id == client_id)
        .order_by(ClientService.created_at.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def remove_assignment(session: AsyncSession, assignment_id: str) -> None:
    row = await session.get(ClientService, assignment_id)
    if row is None:
        raise NotFoundError("Assignment not found")
    await session.delete(row)
    await session.commit()
    logger.info(f"Removed assignment {assignment_id}")
