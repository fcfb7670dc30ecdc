"""
models/user.py
--------------
Domain model for user accounts, plus the request params of the user service.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from db.mapper import CREATED_AT, DELETED_AT, PRIMARY_KEY, UPDATED_AT, column


@dataclass
class User:
    """
    Represents a user account.

    Attributes:
        name: Display name.
        email: Login email, unique among live users (case-insensitive).
        password: Password hash (never the plain password).
        token: Current session token, if logged in.
        token_expired_at: Expiry of the session token.
        id: Database primary key (None for new records).
        created_at / updated_at / deleted_at: Row timestamps.
    """
    name: str = column("name")
    email: str = column("email")
    password: str = column("password", repr=False)
    token: Optional[str] = column("token", default=None, repr=False)
    token_expired_at: Optional[datetime] = column("token_expired_at", default=None)
    id: Optional[int] = column("id", role=PRIMARY_KEY, default=None)
    created_at: Optional[datetime] = column("created_at", role=CREATED_AT, default=None)
    updated_at: Optional[datetime] = column("updated_at", role=UPDATED_AT, default=None)
    deleted_at: Optional[datetime] = column("deleted_at", role=DELETED_AT, default=None)


@dataclass
class FindAllUsersParams:
    user_id: int = 0
    page: int = 0
    limit: int = 0
    search: str = ""
    email: str = ""
    name: str = ""
    token: str = ""


@dataclass
class CreateUserParams:
    name: str
    email: str
    password: str


@dataclass
class UpdateUserParams:
    name: str
    email: str


@dataclass
class LoginResponse:
    """Session handed back by a successful login."""
    session_id: str
    user: User
