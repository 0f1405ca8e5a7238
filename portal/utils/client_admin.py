# portal/utils/client_admin.py
# Client onboarding, listing, activation and cascading removal
# A client owns its login user, assignments and documents
# RELEVANT FILES: assignments.py, documents.py, ../auth.py, ../routers/clients.py

from typing import List, Optional
import logging

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from starlette.concurrency import run_in_threadpool

from ..auth import hash_phone
from ..exceptions import ConflictError, NotFoundError
from ..models import Client, ClientService, Document, User
from ..schemas import ClientCreate, ClientUpdate, Role
from .assignments import assign_initial_services
from .phone import normalize_phone

logger = logging.getLogger(__name__)


def client_loaders():
    return (
        selectinload(Client.user),
        selectinload(Client.services).selectinload(ClientService.service),
        selectinload(Client.services).selectinload(ClientService.sub_service),
    )


async def email_taken(session: AsyncSession, email: str) -> bool:
    result = await session.execute(
        select(User.id).where(func.lower(User.email) == email.strip().lower())
    )
    return result.first() is not None


async def onboard_client(session: AsyncSession, payload: ClientCreate) -> Client:
    """
    Create the CLIENT user, the client profile and any initial assignment
    in one transaction.
    """
    email = payload.email.strip().lower()
    if await email_taken(session, email):
        raise ConflictError("User already exists")

    phone_hash = await run_in_threadpool(hash_phone, payload.phone)

    try:
        user = User(
            name=payload.name,
            email=email,
            phone=normalize_phone(payload.phone),
            phone_hash=phone_hash,
            role=Role.CLIENT.value,
            active=True,
        )
        session.add(user)
        await session.flush()

        client = Client(
            name=payload.name, organization=payload.organization, user_id=user.id
        )
        session.add(client)
        await session.flush()

        if payload.service_id:
            await assign_initial_services(
                session, client.id, payload.service_id, payload.sub_service_id
            )

        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(f"Onboarded client {client.id} (user {user.id})")
    return await get_client(session, client.id)


async def get_client(session: AsyncSession, client_id: str) -> Client:
    result = await session.execute(
        select(Client).options(*client_loaders()).where(Client.id == client_id)
        .execution_options(populate_existing=True)
    )
    client = result.scalars().first()
    if client is None:
        raise NotFoundError("Client not found")
    return client


async def get_client_for_user(session: AsyncSession, user_id: str) -> Client:
    result = await session.execute(
        select(Client).options(*client_loaders()).where(Client.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    client = result.scalars().first()
    if client is None:
        raise NotFoundError("Client record not found")
    return client


async def list_clients(session: AsyncSession, limit: Optional[int] = None) -> List[Client]:
    query = (
        select(Client)
        .options(*client_loaders())
        .order_by(Client.created_at.desc())
        .execution_options(populate_existing=True)
    )
    if limit:
        query = query.limit(limit)
    result = await session.execute(query)
    return list(result.scalars().all())


async def update_client(session: AsyncSession, client_id: str, payload: ClientUpdate) -> Client:
    client = await get_client(session, client_id)

    if payload.name is not None:
        client.name = payload.name
        client.user.name = payload.name
    if payload.organization is not None:
        client.organization = payload.organization
    if payload.active is not None and client.user.active != payload.active:
        client.user.active = payload.active
        logger.info(
            f"Client {client_id} login {'enabled' if payload.active else 'disabled'}"
        )

    await session.commit()
    return await get_client(session, client_id)


async def delete_client(session: AsyncSession, client_id: str) -> List[str]:
    """
    Delete documents, assignments, the client and its user, in that order,
    as one transaction. Returns the storage keys of the deleted documents so
    the caller can remove the blobs after commit.
    """
    client = await session.get(Client, client_id)
    if client is None:
        raise NotFoundError("Client not found")
    user_id = client.user_id

    keys_result = await session.execute(
        select(Document.storage_key).where(Document.client_id == client_id)
    )
    storage_keys = list(keys_result.scalars().all())

    try:
        await session.execute(delete(Document).where(Document.client_id == client_id))
        await session.execute(
            delete(ClientService).where(ClientService.client_id == client_id)
        )
        await session.execute(delete(Client).where(Client.id == client_id))
        await session.execute(delete(User).where(User.id == user_id))
        await session.commit()
    except Exception:
        await session.rollback()
        logger.exception(f"Cascade delete failed for client {client_id}; rolled back")
        raise

    logger.info(
        f"Deleted client {client_id} with {len(storage_keys)} documents and user {user_id}"
    )
    return storage_keys
