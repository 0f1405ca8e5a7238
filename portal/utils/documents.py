# portal/utils/documents.py
# Document access broker: storage keys, uploads, signed downloads and deletion
# Blob bytes live in Supabase Storage; the Document row is the only pointer to them
# RELEVANT FILES: ../storage.py, ../models.py, ../routers/documents.py

from dataclasses import dataclass
from typing import List, Optional
import logging
import re
import time

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..exceptions import AuthorizationError, NotFoundError, StorageError, ValidationFailure
from ..models import Client, Document, SubService
from ..schemas import DocumentDeleteStatus, DocumentResponse
from ..storage import BlobStore

logger = logging.getLogger(__name__)

# Prefixes written by older upload paths
LEGACY_KEY_PREFIXES = ("documents/", "uploads/")

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._ -]")


@dataclass
class DeleteOutcome:
    status: DocumentDeleteStatus
    storage_key: str


def base_filename(file_name: str) -> str:
    """Uploaded name without any client-side directory part"""
    return re.split(r"[\\/]", file_name or "")[-1].strip()


def safe_filename(file_name: str) -> str:
    """Base name with characters outside a conservative set replaced; used in keys only"""
    base = base_filename(file_name)
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", base)
    return cleaned or "file"


def build_storage_key(
    client_id: str, sub_service_id: str, file_name: str, timestamp_ms: Optional[int] = None
) -> str:
    """Canonical key: {clientId}/{subServiceId}/{timestamp}-{filename}"""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{client_id}/{sub_service_id}/{timestamp_ms}-{safe_filename(file_name)}"


def normalize_storage_key(key: str) -> str:
    """Strip leading slashes and legacy prefixes from stored keys"""
    key = (key or "").strip().lstrip("/")
    for prefix in LEGACY_KEY_PREFIXES:
        if key.startswith(prefix):
            key = key[len(prefix):].lstrip("/")
    return key


def to_document_response(document: Document) -> DocumentResponse:
    sub_service = document.sub_service
    service = sub_service.service if sub_service is not None else None
    return DocumentResponse(
        id=document.id,
        client_id=document.client_id,
        sub_service_id=document.sub_service_id,
        file_name=document.file_name,
        created_at=document.created_at,
        sub_service_name=sub_service.name if sub_service else None,
        service_id=service.id if service else None,
        service_name=service.name if service else None,
    )


def document_loaders():
    return (selectinload(Document.sub_service).selectinload(SubService.service),)


async def list_documents(
    session: AsyncSession, client_id: Optional[str] = None
) -> List[Document]:
    query = (
        select(Document)
        .options(*document_loaders())
        .order_by(Document.created_at.desc())
        .execution_options(populate_existing=True)
    )
    if client_id:
        query = query.where(Document.client_id == client_id)
    result = await session.execute(query)
    return list(result.scalars().all())


async def get_document(session: AsyncSession, document_id: str) -> Document:
    result = await session.execute(
        select(Document).options(*document_loaders()).where(Document.id == document_id)
        .execution_options(populate_existing=True)
    )
    document = result.scalars().first()
    if document is None:
        raise NotFoundError("Document not found")
    return document


async def upload_document(
    session: AsyncSession,
    store: BlobStore,
    client_id: str,
    sub_service_id: str,
    file_name: str,
    data: bytes,
    content_type: Optional[str] = None,
) -> Document:
    """
    Store the bytes under the canonical key, then record the document.
    The blob is removed again if the record cannot be written.
    """
    if not data:
        raise ValidationFailure("Uploaded file is empty")
    if await session.get(Client, client_id) is None:
        raise NotFoundError("Client not found")
    sub_service = await session.get(SubService, sub_service_id)
    if sub_service is None or not sub_service.active:
        raise NotFoundError("Sub-service not found")

    key = build_storage_key(client_id, sub_service_id, file_name)
    await store.upload(key, data, content_type)

    try:
        document = Document(
            client_id=client_id,
            sub_service_id=sub_service_id,
            file_name=base_filename(file_name) or "file",
            storage_key=key,
        )
        session.add(document)
        await session.commit()
    except Exception:
        await session.rollback()
        logger.exception(f"Failed to record document for blob {key}")
        try:
            await store.remove(key)
        except StorageError:
            logger.error(f"Orphaned blob left in storage: {key}")
        raise

    logger.info(f"Uploaded document {document.id} for client {client_id}")
    return await get_document(session, document.id)


async def get_download_link(
    session: AsyncSession,
    store: BlobStore,
    document_id: str,
    owner_client_id: Optional[str] = None,
) -> str:
    """
    Signed, short-lived URL for one document.
    When owner_client_id is given the document must belong to that client.
    """
    document = await get_document(session, document_id)
    if owner_client_id is not None and document.client_id != owner_client_id:
        raise AuthorizationError("Document belongs to another client")

    key = normalize_storage_key(document.storage_key)
    return await store.signed_download_url(key, document.file_name)


async def delete_document(
    session: AsyncSession, store: BlobStore, document_id: str
) -> DeleteOutcome:
    """
    Remove the blob, then the record.
    A failed blob removal is logged and reported as a partial failure;
    the record is deleted regardless.
    """
    document = await session.get(Document, document_id)
    if document is None:
        raise NotFoundError("Document not found")

    key = normalize_storage_key(document.storage_key)
    status = DocumentDeleteStatus.DELETED
    try:
        await store.remove(key)
    except StorageError:
        logger.error(f"Blob delete failed for document {document_id}; key {key} orphaned")
        status = DocumentDeleteStatus.PARTIAL_FAILURE

    await session.delete(document)
    await session.commit()
    logger.info(f"Deleted document {document_id} ({status.value})")
    return DeleteOutcome(status=status, storage_key=key)


async def remove_blobs(store: BlobStore, keys: List[str]) -> List[str]:
    """Best-effort removal; returns the keys that could not be removed"""
    failed = []
    for key in keys:
        try:
            await store.remove(normalize_storage_key(key))
        except StorageError:
            failed.append(key)
    if failed:
        logger.error(f"Orphaned blobs after cascade delete: {failed}")
    return failed
