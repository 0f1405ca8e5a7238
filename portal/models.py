# portal/models.py
# SQLAlchemy ORM models for users, clients, the service catalog and documents
# Relationships are loaded explicitly with selectinload (async sessions)
# RELEVANT FILES: database.py, schemas.py, utils/catalog_sync.py, utils/client_admin.py

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _uuid() -> str:
    return str(uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(10), nullable=True)  # Normalized, last 10 digits
    phone_hash = Column(String(255), nullable=False)
    role = Column(String(16), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    client = relationship("Client", back_populates="user", uselist=False)


class Client(Base):
    __tablename__ = "clients"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    organization = Column(String(255), nullable=True)
    user_id = Column(String(36), ForeignKey("users.id"), unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    user = relationship("User", back_populates="client")
    services = relationship("ClientService", back_populates="client")
    documents = relationship("Document", back_populates="client")


class Service(Base):
    __tablename__ = "services"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    sub_services = relationship("SubService", back_populates="service")


class SubService(Base):
    __tablename__ = "sub_services"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    service_id = Column(String(36), ForeignKey("services.id"), nullable=False, index=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    service = relationship("Service", back_populates="sub_services")


class ClientService(Base):
    """
    Assignment of a client to a service, optionally narrowed to one sub-service.
    sub_service_id is null for a service-level assignment.
    """

    __tablename__ = "client_services"
    __table_args__ = (
        UniqueConstraint(
            "client_id", "service_id", "sub_service_id", name="uq_client_service_sub"
        ),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=False, index=True)
    service_id = Column(String(36), ForeignKey("services.id"), nullable=False, index=True)
    sub_service_id = Column(String(36), ForeignKey("sub_services.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    client = relationship("Client", back_populates="services")
    service = relationship("Service")
    sub_service = relationship("SubService")


class Document(Base):
    __tablename__ = "documents"

    id = Column(String(36), primary_key=True, default=_uuid)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=False, index=True)
    sub_service_id = Column(String(36), ForeignKey("sub_services.id"), nullable=False)
    file_name = Column(String(255), nullable=False)
    storage_key = Column(String(1024), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    client = relationship("Client", back_populates="documents")
    sub_service = relationship("SubService")
