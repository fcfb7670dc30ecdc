"""
services/user_service.py
-------------------------
Business logic for user accounts.
Password hashing and checking are delegated to ``password_hasher`` and
``password_verifier`` (Argon2id by default). Logins issue an opaque session
token stored on the user row until logout or expiry.
"""

import secrets
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Optional

from db.context import ExecutionContext
from db.errors import AppError
from db.storage import utc_now
from db.transaction import TransactionManager
from models.user import CreateUserParams, FindAllUsersParams, LoginResponse, UpdateUserParams, User
from repositories.user_repo import UserRepository
from utils.logger import get_logger
from utils.passwords import hash_password, verify_password

logger = get_logger(__name__)

ERR_EMAIL_ALREADY_EXISTS = "Email Already Exists"
ERR_WRONG_EMAIL = "wrong email"
ERR_WRONG_PASSWORD = "wrong password"
ERR_SESSION_EXPIRED = "session expired"

SESSION_TTL = timedelta(hours=72)


class UserService:
    """Manages user accounts. Every write runs in a request transaction."""

    def __init__(self, repo: Optional[UserRepository] = None,
                 tx: Optional[TransactionManager] = None,
                 password_hasher: Callable[[str], str] = hash_password,
                 password_verifier: Callable[[str, str], bool] = verify_password,
                 clock: Callable[[], datetime] = utc_now):
        self.repo = repo or UserRepository()
        self.tx = tx or TransactionManager()
        self.password_hasher = password_hasher
        self.password_verifier = password_verifier
        self.clock = clock

    def list_users(self, ctx: ExecutionContext, params: FindAllUsersParams) -> tuple[list[User], int]:
        """
        List users for one page.

        Returns:
            (users on the requested page, total number of matching users).
        """
        users = self.repo.find_all(ctx, params)
        all_users = self.repo.find_all(ctx, replace(params, page=0, limit=0))
        return users, len(all_users)

    def get_user(self, ctx: ExecutionContext, user_id: int) -> User:
        return self.repo.find_by_id(ctx, user_id)

    def get_by_token(self, ctx: ExecutionContext, token: str) -> User:
        """
        Resolve a session token to its user.

        Raises:
            AppError: NOT_FOUND for an unknown token or one past its expiry.
        """
        user = self.repo.find_by_token(ctx, token)
        if user.token_expired_at is not None and user.token_expired_at <= self.clock():
            raise AppError.not_found("UserService.get_by_token", ERR_SESSION_EXPIRED)
        return user

    def create_user(self, ctx: ExecutionContext, params: CreateUserParams) -> User:
        """
        Register a new user.

        Raises:
            AppError: ALREADY_EXISTS if the email is taken by a live user.
        """
        def _create(tx_ctx: ExecutionContext) -> User:
            self._ensure_email_free(tx_ctx, params.email, "UserService.create_user")
            user = User(
                name=params.name,
                email=params.email,
                password=self.password_hasher(params.password),
            )
            return self.repo.insert(tx_ctx, user)

        user = self.tx.run_in_transaction(ctx, _create)
        logger.info(f"[{ctx.request_id}] Created user #{user.id}")
        return user

    def update_user(self, ctx: ExecutionContext, user_id: int, params: UpdateUserParams) -> User:
        """
        Change a user's name and email.

        Raises:
            AppError: NOT_FOUND for an unknown user, ALREADY_EXISTS if the
                email belongs to another live user.
        """
        def _update(tx_ctx: ExecutionContext) -> User:
            user = self.repo.find_by_id(tx_ctx, user_id)
            self._ensure_email_free(tx_ctx, params.email, "UserService.update_user", exclude_id=user_id)
            user.name = params.name
            user.email = params.email
            return self.repo.update(tx_ctx, user)

        return self.tx.run_in_transaction(ctx, _update)

    def delete_user(self, ctx: ExecutionContext, user_id: int) -> None:
        self.tx.run_in_transaction(ctx, lambda tx_ctx: self.repo.delete(tx_ctx, user_id))
        logger.info(f"[{ctx.request_id}] Deleted user #{user_id}")

    # ── Sessions and credentials ──────────────────────────

    def change_password(self, ctx: ExecutionContext, user_id: int,
                        old_password: str, new_password: str) -> None:
        """
        Replace a user's password after checking the current one.

        Raises:
            AppError: NOT_FOUND for an unknown user, VALIDATION if
                ``old_password`` is wrong.
        """
        def _change(tx_ctx: ExecutionContext) -> None:
            user = self.repo.find_by_id(tx_ctx, user_id)
            if not self.password_verifier(old_password, user.password):
                raise AppError.validation("UserService.change_password", ERR_WRONG_PASSWORD)
            user.password = self.password_hasher(new_password)
            self.repo.update(tx_ctx, user)

        self.tx.run_in_transaction(ctx, _change)
        logger.info(f"[{ctx.request_id}] Password changed for user #{user_id}")

    def login(self, ctx: ExecutionContext, email: str, password: str) -> LoginResponse:
        """
        Check credentials and open a session.

        Returns:
            The new session token and the logged-in user.

        Raises:
            AppError: VALIDATION for an unknown email or a wrong password.
        """
        path = "UserService.login"

        def _login(tx_ctx: ExecutionContext) -> LoginResponse:
            users = self.repo.find_all(tx_ctx, FindAllUsersParams(email=email))
            if not users:
                raise AppError.validation(path, ERR_WRONG_EMAIL)
            user = users[0]
            if not self.password_verifier(password, user.password):
                raise AppError.validation(path, ERR_WRONG_PASSWORD)
            user.token = secrets.token_hex(32)
            user.token_expired_at = self.clock() + SESSION_TTL
            user = self.repo.update(tx_ctx, user)
            return LoginResponse(session_id=user.token, user=user)

        response = self.tx.run_in_transaction(ctx, _login)
        logger.info(f"[{ctx.request_id}] User #{response.user.id} logged in")
        return response

    def logout(self, ctx: ExecutionContext, token: str) -> None:
        """
        Close the session for ``token``.

        Raises:
            AppError: NOT_FOUND for an unknown token.
        """
        def _logout(tx_ctx: ExecutionContext) -> User:
            user = self.repo.find_by_token(tx_ctx, token)
            user.token = None
            user.token_expired_at = None
            return self.repo.update(tx_ctx, user)

        user = self.tx.run_in_transaction(ctx, _logout)
        logger.info(f"[{ctx.request_id}] User #{user.id} logged out")

    def _ensure_email_free(self, ctx: ExecutionContext, email: str, path: str,
                           exclude_id: Optional[int] = None) -> None:
        # The partial unique index on LOWER(email) backs this check under races.
        if not email:
            return
        users = self.repo.find_all(ctx, FindAllUsersParams(email=email))
        if any(u.id != exclude_id for u in users):
            raise AppError.already_exists(path, ERR_EMAIL_ALREADY_EXISTS)
