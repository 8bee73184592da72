"""
invoice_hub.auth

Authentication package.

Responsibilities:
- JWT helpers and validation.
- FastAPI dependencies that turn a bearer token into a `Principal`.
"""
