"""Profile model type definitions for database operations."""

from datetime import date, datetime
from typing import TypedDict
from uuid import UUID


class Profile(TypedDict):
    """Profile table row representation.

    ``id`` is the auth user id. The profile is the only identity data owned
    locally; credentials live with the auth provider.
    """

    id: UUID
    first_name: str | None
    last_name: str | None
    date_of_birth: date | None
    main_organization_id: UUID | None
    created_at: datetime
    updated_at: datetime
