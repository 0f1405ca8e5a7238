# portal/routers/pages.py
# Page endpoints behind the authorization gate: login, unauthorized, dashboards
# Dashboards are served as JSON view models; rendering happens in the frontend
# RELEVANT FILES: ../middleware.py, ../utils/client_admin.py, ../schemas.py

from collections import OrderedDict
from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import Identity
from ..deps import get_current_identity, get_session, require_admin, require_client
from ..models import Client, ClientService, Document, Service, User
from ..schemas import (
    AdminDashboard,
    BaseResponse,
    ClientDashboard,
    ClientResponse,
    ClientServiceResponse,
    DashboardStats,
    DocumentGroup,
    UserSummary,
)
from ..utils.assignments import assignment_loaders
from ..utils.client_admin import get_client_for_user, list_clients
from ..utils.documents import list_documents, to_document_response

router = APIRouter(tags=["pages"])

RECENT_LIMIT = 5


@router.get("/login", response_model=BaseResponse)
async def login_page():
    return BaseResponse(success=True, message="Sign in with your email and phone number")


@router.get("/unauthorized", response_model=BaseResponse)
async def unauthorized_page():
    return BaseResponse(success=False, message="You do not have access to this area")


@router.get(
    "/admin/dashboard",
    response_model=AdminDashboard,
    dependencies=[Depends(require_admin)],
)
async def admin_dashboard(session: AsyncSession = Depends(get_session)):
    """Headline counts plus the most recent clients and assignments"""
    stats = DashboardStats(
        clients=await session.scalar(select(func.count(Client.id))),
        active_services=await session.scalar(
            select(func.count(Service.id)).where(Service.active.is_(True))
        ),
        documents=await session.scalar(select(func.count(Document.id))),
    )

    recent_clients = await list_clients(session, limit=RECENT_LIMIT)
    result = await session.execute(
        select(ClientService)
        .options(*assignment_loaders())
        .order_by(ClientService.created_at.desc())
        .limit(RECENT_LIMIT)
    )

    return AdminDashboard(
        stats=stats,
        recent_clients=[ClientResponse.model_validate(c) for c in recent_clients],
        recent_assignments=[
            ClientServiceResponse.model_validate(r) for r in result.scalars().all()
        ],
    )


@router.get(
    "/client/dashboard",
    response_model=ClientDashboard,
    dependencies=[Depends(require_client)],
)
async def client_dashboard(
    identity: Identity = Depends(get_current_identity),
    session: AsyncSession = Depends(get_session),
):
    """The signed-in client's profile, subscriptions and documents by service"""
    client = await get_client_for_user(session, identity.user_id)
    user = await session.get(User, identity.user_id)

    groups: "OrderedDict[str, DocumentGroup]" = OrderedDict()
    for document in await list_documents(session, client.id):
        item = to_document_response(document)
        key = item.service_id or ""
        if key not in groups:
            groups[key] = DocumentGroup(
                service_id=key, service_name=item.service_name or "", documents=[]
            )
        groups[key].documents.append(item)

    return ClientDashboard(
        user=UserSummary.model_validate(user),
        client=ClientResponse.model_validate(client),
        document_groups=list(groups.values()),
    )
