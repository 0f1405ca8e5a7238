# portal/routers/__init__.py
# Router package initialization
# Exports all routers for easy import in main.py
# RELEVANT FILES: auth.py, clients.py, services.py, client_services.py, documents.py, pages.py

from .auth import router as auth_router
from .clients import router as clients_router
from .services import services_router, subservices_router
from .client_services import router as client_services_router
from .documents import admin_router as documents_router, download_router
from .pages import router as pages_router

__all__ = [
    "auth_router",
    "clients_router",
    "services_router",
    "subservices_router",
    "client_services_router",
    "documents_router",
    "download_router",
    "pages_router",
]
