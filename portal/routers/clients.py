# portal/routers/clients.py
# Admin API routes for client onboarding, listing, activation and removal
# Every route here requires the ADMIN role
# RELEVANT FILES: ../utils/client_admin.py, ../utils/documents.py, ../schemas.py

from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ..deps import get_session, require_admin
from ..exceptions import StorageError
from ..schemas import (
    BaseResponse,
    ClientCreate,
    ClientDetailResponse,
    ClientResponse,
    ClientUpdate,
)
from ..storage import get_blob_store
from ..utils.client_admin import (
    delete_client,
    get_client,
    list_clients,
    onboard_client,
    update_client,
)
from ..utils.documents import list_documents, remove_blobs, to_document_response

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin/clients",
    tags=["clients"],
    dependencies=[Depends(require_admin)],
)


@router.get("", response_model=List[ClientResponse])
async def list_all_clients(session: AsyncSession = Depends(get_session)):
    """List clients, newest first, with login status and assignments"""
    return [ClientResponse.model_validate(c) for c in await list_clients(session)]


@router.post("", response_model=ClientResponse)
async def create_client(payload: ClientCreate, session: AsyncSession = Depends(get_session)):
    """
    Onboard a client.
    Creates the login user and profile, plus the initial service assignment
    when a service is given.
    """
    client = await onboard_client(session, payload)
    return ClientResponse.model_validate(client)


@router.get("/{client_id}", response_model=ClientDetailResponse)
async def get_client_detail(client_id: str, session: AsyncSession = Depends(get_session)):
    client = await get_client(session, client_id)
    documents = await list_documents(session, client_id)
    return ClientDetailResponse(
        **ClientResponse.model_validate(client).model_dump(),
        documents=[to_document_response(d) for d in documents],
    )


@router.patch("/{client_id}", response_model=ClientResponse)
async def patch_client(
    client_id: str, payload: ClientUpdate, session: AsyncSession = Depends(get_session)
):
    """Rename a client or enable/disable its login"""
    client = await update_client(session, client_id, payload)
    return ClientResponse.model_validate(client)


@router.delete("/{client_id}", response_model=BaseResponse)
async def remove_client(client_id: str, session: AsyncSession = Depends(get_session)):
    """
    Delete a client with its documents, assignments and login user.
    Stored files are removed after the records; leftovers are reported.
    """
    storage_keys = await delete_client(session, client_id)

    orphaned: List[str] = []
    if storage_keys:
        try:
            store = await get_blob_store()
            orphaned = await remove_blobs(store, storage_keys)
        except StorageError:
            logger.error(f"Storage unavailable; {len(storage_keys)} blobs left for client {client_id}")
            orphaned = storage_keys

    return BaseResponse(
        success=True,
        message="Client deleted",
        data={"documents": len(storage_keys), "orphanedKeys": orphaned},
    )
