"""
repositories/user_repo.py
--------------------------
Data access layer for user records.
"""

from typing import Optional

from db.context import ExecutionContext
from db.errors import AppError
from db.mapper import QueryFilter, Table, escape_like
from db.storage import GenericStorage
from models.user import FindAllUsersParams, User

USERS = Table("users", User)


class UserRepository:
    """Repository for CRUD operations on the users table."""

    def __init__(self, storage: Optional[GenericStorage] = None):
        self.storage = storage or GenericStorage(USERS)

    # ── READ ──────────────────────────────────────────────

    def find_all(self, ctx: ExecutionContext, params: FindAllUsersParams) -> list[User]:
        """
        List live users matching ``params``, newest first.

        Email and name match case-insensitively; ``search`` is a substring
        match on the name. Pagination applies only when both page and limit
        are set.
        """
        flt = QueryFilter()
        if params.user_id:
            flt.where("id", params.user_id)
        if params.email:
            flt.where("email", escape_like(params.email), "ILIKE")
        if params.name:
            flt.where("name", escape_like(params.name), "ILIKE")
        if params.search:
            flt.where("name", f"%{escape_like(params.search)}%", "ILIKE")
        if params.token:
            flt.where("token", params.token)
        flt.paginate(params.limit, params.page)
        return self.storage.where(ctx, flt)

    def find_by_id(self, ctx: ExecutionContext, user_id: int) -> User:
        users = self.find_all(ctx, FindAllUsersParams(user_id=user_id))
        if not users or users[0].id != user_id:
            raise AppError.not_found("UserRepository.find_by_id", f"user #{user_id} not found")
        return users[0]

    def find_by_email(self, ctx: ExecutionContext, email: str) -> User:
        users = self.find_all(ctx, FindAllUsersParams(email=email))
        if not users or users[0].email.lower() != email.lower():
            raise AppError.not_found("UserRepository.find_by_email", f"user {email!r} not found")
        return users[0]

    def find_by_token(self, ctx: ExecutionContext, token: str) -> User:
        users = self.find_all(ctx, FindAllUsersParams(token=token))
        if not users or users[0].token != token:
            raise AppError.not_found("UserRepository.find_by_token", "session not found")
        return users[0]

    # ── WRITE ─────────────────────────────────────────────

    def insert(self, ctx: ExecutionContext, user: User) -> User:
        return self.storage.insert(ctx, user)

    def update(self, ctx: ExecutionContext, user: User) -> User:
        return self.storage.update(ctx, user)

    def delete(self, ctx: ExecutionContext, user_id: int) -> None:
        self.storage.delete(ctx, user_id)
