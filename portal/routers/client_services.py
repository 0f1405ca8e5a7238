# portal/routers/client_services.py
# Admin API routes for manual client-to-service assignments
# Duplicate (client, service, sub-service) triples are rejected
# RELEVANT FILES: ../utils/assignments.py, ../schemas.py

from typing import List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_session, require_admin
from ..schemas import BaseResponse, ClientServiceCreate, ClientServiceResponse
from ..utils.assignments import (
    assign_client_service,
    list_client_assignments,
    remove_assignment,
)

router = APIRouter(
    prefix="/api/admin/client-services",
    tags=["client-services"],
    dependencies=[Depends(require_admin)],
)


@router.get("", response_model=List[ClientServiceResponse])
async def list_assignments(
    client_id: str = Query(..., alias="clientId", min_length=1),
    session: AsyncSession = Depends(get_session),
):
    rows = await list_client_assignments(session, client_id)
    return [ClientServiceResponse.model_validate(r) for r in rows]


@router.post("", response_model=ClientServiceResponse)
async def create_assignment(
    payload: ClientServiceCreate, session: AsyncSession = Depends(get_session)
):
    row = await assign_client_service(
        session, payload.client_id, payload.service_id, payload.sub_service_id
    )
    return ClientServiceResponse.model_validate(row)


@router.delete("/{assignment_id}", response_model=BaseResponse)
async def delete_assignment(assignment_id: str, session: AsyncSession = Depends(get_session)):
    await remove_assignment(session, assignment_id)
    return BaseResponse(success=True, message="Assignment removed")
