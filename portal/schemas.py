# portal/schemas.py
# Pydantic models for request/response validation
# JSON bodies use camelCase aliases; Python code uses snake_case field names
# RELEVANT FILES: models.py, routers/*.py

from pydantic import AfterValidator, BaseModel, BeforeValidator, Field, EmailStr, ConfigDict, field_validator
from pydantic.alias_generators import to_camel
from typing import Annotated, Optional, List, Dict, Any
from datetime import datetime
from enum import Enum

from .utils.phone import is_valid_phone

MIN_NAME_LENGTH = 3


class Role(str, Enum):
    """Account role; fixed when the user is created"""

    ADMIN = "ADMIN"
    CLIENT = "CLIENT"


class CamelModel(BaseModel):
    """Base model that reads snake_case attributes and speaks camelCase JSON"""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


class BaseResponse(BaseModel):
    """Base response model with common fields"""

    success: bool = Field(True, description="Operation success status")
    message: Optional[str] = Field(None, description="Optional message")
    data: Optional[Dict[str, Any]] = Field(None, description="Response data")


def _clean_name(value: str) -> str:
    value = (value or "").strip()
    if len(value) < MIN_NAME_LENGTH:
        raise ValueError(f"Name must be at least {MIN_NAME_LENGTH} characters")
    return value


CatalogName = Annotated[str, AfterValidator(_clean_name)]


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


# Optional reference id; an empty form value means "not given"
OptionalId = Annotated[Optional[str], BeforeValidator(_blank_to_none)]


# Auth schemas


class LoginRequest(BaseModel):
    """Login with email and phone (the phone acts as the password)"""

    email: EmailStr
    phone: str = Field(..., min_length=1, max_length=32)


class UserSummary(CamelModel):
    id: str
    name: str
    email: str
    role: Role


class LoginResponse(BaseModel):
    success: bool = True
    user: UserSummary


# Catalog schemas


class ServiceRef(CamelModel):
    id: str
    name: str


class ServiceCreate(CamelModel):
    name: CatalogName = Field(..., description="Service name")
    description: Optional[str] = None


class ServiceUpdate(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    active: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _clean_name(value)


class ServiceResponse(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    active: bool
    created_at: datetime


class SubServiceCreate(CamelModel):
    name: CatalogName = Field(..., description="Sub-service name")
    service_id: str = Field(..., min_length=1, description="Parent service ID")


class SubServiceUpdate(CamelModel):
    name: Optional[str] = None
    active: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _clean_name(value)


class SubServiceResponse(CamelModel):
    id: str
    name: str
    service_id: str
    active: bool
    created_at: datetime


class SubServiceWithService(SubServiceResponse):
    service: ServiceRef


class ServiceDeleteResult(str, Enum):
    DELETED = "deleted"
    DEACTIVATED = "deactivated"


class SyncResult(CamelModel):
    service_id: str
    clients: int = Field(..., description="Clients whose assignments were rebuilt")
    rows: int = Field(..., description="Assignment rows after sync")


# Assignment schemas


class ClientServiceCreate(CamelModel):
    client_id: str = Field(..., min_length=1)
    service_id: str = Field(..., min_length=1)
    sub_service_id: OptionalId = None


class ClientServiceResponse(CamelModel):
    id: str
    client_id: str
    service_id: str
    sub_service_id: Optional[str] = None
    created_at: datetime
    service: Optional[ServiceRef] = None
    sub_service: Optional[ServiceRef] = None


# Client schemas


class ClientCreate(CamelModel):
    """Onboard a client: creates the login user and the client profile together"""

    name: CatalogName
    organization: Optional[str] = None
    email: EmailStr
    phone: str
    service_id: OptionalId = None
    sub_service_id: OptionalId = None

    @field_validator("phone")
    @classmethod
    def _check_phone(cls, value: str) -> str:
        if not is_valid_phone(value):
            raise ValueError("Phone must contain at least 10 digits")
        return value


class ClientUpdate(CamelModel):
    name: Optional[str] = None
    organization: Optional[str] = None
    active: Optional[bool] = Field(None, description="Enable or block login")

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _clean_name(value)


class ClientUserInfo(CamelModel):
    email: str
    active: bool


class ClientResponse(CamelModel):
    id: str
    name: str
    organization: Optional[str] = None
    user_id: str
    created_at: datetime
    user: Optional[ClientUserInfo] = None
    services: List[ClientServiceResponse] = Field(default_factory=list)


# Document schemas


class DocumentResponse(CamelModel):
    id: str
    client_id: str
    sub_service_id: str
    file_name: str
    created_at: datetime
    sub_service_name: Optional[str] = None
    service_id: Optional[str] = None
    service_name: Optional[str] = None


class DocumentDeleteStatus(str, Enum):
    DELETED = "deleted"
    PARTIAL_FAILURE = "partial_failure"


class ClientDetailResponse(ClientResponse):
    documents: List[DocumentResponse] = Field(default_factory=list)


class DocumentGroup(CamelModel):
    service_id: str
    service_name: str
    documents: List[DocumentResponse]


# Dashboard schemas


class DashboardStats(CamelModel):
    clients: int
    active_services: int
    documents: int


class AdminDashboard(CamelModel):
    stats: DashboardStats
    recent_clients: List[ClientResponse]
    recent_assignments: List[ClientServiceResponse]


class ClientDashboard(CamelModel):
    user: UserSummary
    client: ClientResponse
    document_groups: List[DocumentGroup]
