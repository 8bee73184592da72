"""
invoice_hub.api

API package for the Invoice Hub service.

Responsibilities:
- FastAPI app factory and router modules.
- API-layer dependency wiring and request/response models.
"""


# --- Module Notes -----------------------------------------------------------
# The API layer stays thin: request validation + policy checks + delegation to services.
