"""
Directory — resolves pipeline roles and org administrators to users.

Lookups return ``None`` / ``[]`` when nothing matches; a missing responsible
user is a normal outcome, not an error.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from osflow.core.exceptions import PersistenceError
from osflow.models import db
from osflow.models.auth import ADMIN_ORG_ROLES, User
from osflow.models.workflow import Role

logger = logging.getLogger(__name__)


class Directory:
    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    def resolve_user_for_role(self, role: Role, org_id: str | None) -> str | None:
        """First active user holding *role* in *org_id*, by creation order."""
        stmt = (
            select(User.id)
            .where(User.role == role, User.is_active.is_(True), User.org_id == org_id)
            .order_by(User.created_at, User.id)
            .limit(1)
        )
        user_id = self._execute("resolve_user_for_role", stmt).scalar_one_or_none()
        if user_id is None:
            logger.info("No active user for role %s", role.value, extra={"org_id": org_id})
        return user_id

    def list_admins(self, org_id: str | None) -> list[str]:
        stmt = (
            select(User.id)
            .where(
                User.org_id == org_id,
                User.org_role.in_(ADMIN_ORG_ROLES),
                User.is_active.is_(True),
            )
            .order_by(User.created_at, User.id)
        )
        return list(self._execute("list_admins", stmt).scalars().all())

    def get_user(self, user_id: str | None) -> User | None:
        if not user_id:
            return None
        try:
            return self.session.get(User, user_id)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceError("Directory unavailable (get_user)", operation="get_user") from exc

    def _execute(self, operation: str, stmt):
        try:
            return self.session.execute(stmt)
        except SQLAlchemyError as exc:
            logger.error("Directory lookup failed: %s: %s", operation, exc)
            self.session.rollback()
            raise PersistenceError(f"Directory unavailable ({operation})", operation=operation) from exc
