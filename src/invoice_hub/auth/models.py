"""
invoice_hub.auth.models

Auth domain models.

Responsibilities:
- Define the authenticated identity type (`Principal`) decoded from a bearer token.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Principal:
    """
    Authenticated caller identity, as claimed by the token.

    Authorization never reads `roles` from here: the API layer reloads the user's roles,
    permissions and provider link from the database into an `AccessContext`.
    """

    subject: str
    roles: frozenset[str]

    @property
    def user_id(self) -> int | None:
        try:
            return int(self.subject)
        except ValueError:
            return None


# --- Module Notes -----------------------------------------------------------
# `subject` is also the `actor` string recorded on audit events.
