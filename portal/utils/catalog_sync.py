# portal/utils/catalog_sync.py
# Reconciles client assignments of a service with its active sub-service catalog
# Full reset-and-fan-out, serialized per service id, one transaction per run
# RELEVANT FILES: ../models.py, ../routers/services.py, assignments.py

from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Dict, List, Optional
import asyncio
import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import NotFoundError
from ..models import ClientService, Service, SubService
from ..schemas import SyncResult

logger = logging.getLogger(__name__)

# One lock per service id, dropped once no task holds or awaits it
_sync_locks: Dict[str, asyncio.Lock] = {}
_lock_users: Dict[str, int] = defaultdict(int)


@asynccontextmanager
async def service_lock(service_id: str):
    lock = _sync_locks.setdefault(service_id, asyncio.Lock())
    _lock_users[service_id] += 1
    try:
        async with lock:
            yield
    finally:
        _lock_users[service_id] -= 1
        if not _lock_users[service_id]:
            del _lock_users[service_id]
            del _sync_locks[service_id]


async def get_active_sub_services(session: AsyncSession, service_id: str) -> List[SubService]:
    result = await session.execute(
        select(SubService)
        .where(SubService.service_id == service_id, SubService.active.is_(True))
        .order_by(SubService.created_at, SubService.id)
    )
    return list(result.scalars().all())


async def get_assigned_client_ids(session: AsyncSession, service_id: str) -> List[str]:
    """Distinct clients holding any assignment row for the service"""
    result = await session.execute(
        select(ClientService.client_id)
        .where(ClientService.service_id == service_id)
        .distinct()
        .order_by(ClientService.client_id)
    )
    return list(result.scalars().all())


def fan_out_rows(
    client_ids: List[str], service_id: str, sub_service_ids: List[str]
) -> List[ClientService]:
    """
    One row per (client, active sub-service); a single service-level row
    per client when the service has no active sub-services.
    """
    targets: List[Optional[str]] = list(sub_service_ids) or [None]
    return [
        ClientService(client_id=client_id, service_id=service_id, sub_service_id=sub_id)
        for client_id in client_ids
        for sub_id in targets
    ]


async def sync_service_clients(session: AsyncSession, service_id: str) -> SyncResult:
    """
    Rebuild every client's assignments for one service.

    Steps:
        1. Load the active sub-services of the service.
        2. Load the distinct clients assigned to the service at all.
        3. Delete every assignment row of the service.
        4. Recreate rows for each client against the current catalog.

    Steps 3 and 4 commit together; any failure rolls back to the previous rows.
    Idempotent: a second run yields the same row set.
    """
    if await session.get(Service, service_id) is None:
        raise NotFoundError("Service not found")

    async with service_lock(service_id):
        try:
            sub_services = await get_active_sub_services(session, service_id)
            client_ids = await get_assigned_client_ids(session, service_id)

            await session.execute(
                delete(ClientService).where(ClientService.service_id == service_id)
            )
            await session.flush()

            rows = fan_out_rows(client_ids, service_id, [s.id for s in sub_services])
            session.add_all(rows)
            await session.commit()
        except Exception:
            await session.rollback()
            logger.exception(f"Sync failed for service {service_id}; changes rolled back")
            raise

    logger.info(
        f"Synced service {service_id}: {len(client_ids)} clients, "
        f"{len(sub_services)} active sub-services, {len(rows)} rows"
    )
    return SyncResult(service_id=service_id, clients=len(client_ids), rows=len(rows))
