# portal/utils/__init__.py
# Domain helpers used by the routers
# Modules take the request's AsyncSession as their first argument
# RELEVANT FILES: phone.py, catalog.py, catalog_sync.py, assignments.py, client_admin.py, documents.py

from .phone import normalize_phone, is_valid_phone

__all__ = [
    "normalize_phone",
    "is_valid_phone",
]
