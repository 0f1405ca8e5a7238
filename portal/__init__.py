# portal/__init__.py
# Client portal service package
# Role-gated onboarding, service catalog and document exchange API
# RELEVANT FILES: main.py, config.py
