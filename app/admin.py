"""
Administrative operations: users, roles, enabled flag, promotion and stats.

Callers are expected to have checked that the acting user is an admin; these
methods only enforce data rules and log every change as a security event.
"""
from datetime import datetime
from typing import List, Optional
import re
import uuid

from app.db.repository import QueryRepository, UserRepository
from app.errors import AccessDenied, NotFound, ValidationError
from app.logging_config import get_logger, log_security_event
from app.usage.quota import QuotaLedger, start_of_day, start_of_month

logger = get_logger(__name__)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _mask_email(email: str) -> str:
    return email[:10] + "..."


class AdminService:
    def __init__(
        self,
        users: UserRepository,
        queries: QueryRepository,
        ledger: QuotaLedger,
        allowed_promotion_emails: Optional[List[str]] = None,
    ):
        self.users = users
        self.queries = queries
        self.ledger = ledger
        self.allowed_promotion_emails = [e.lower() for e in (allowed_promotion_emails or [])]

    def list_users(self) -> List[dict]:
        """All users, newest first, with live day/month counts and role ceilings."""
        result = []
        now = datetime.now()
        for user in self.users.list_users():
            counters = self.ledger.usage(user["id"], now)
            daily_limit, monthly_limit = self.ledger.policy.ceilings(user["role"])
            user.update(
                daily_count=counters.daily_count,
                monthly_count=counters.monthly_count,
                daily_limit=daily_limit,
                monthly_limit=monthly_limit,
            )
            result.append(user)
        return result

    def create_user(self, email: str, role: str = "free", user_id: Optional[str] = None) -> dict:
        if not email or not _EMAIL_RE.match(email):
            raise ValidationError("Formato de email no válido")
        if self.users.get_by_email(email):
            raise ValidationError("Ya existe un usuario con ese email")
        user = self.users.create(user_id or str(uuid.uuid4()), email.lower(), role=role)
        log_security_event("admin_user_created", {"user_id": user["id"], "role": role})
        return user

    def set_role(self, user_id: str, role: str) -> dict:
        user = self.users.update(user_id, role=role)
        log_security_event("admin_role_changed", {"user_id": user_id, "role": role})
        return user

    def set_enabled(self, user_id: str, enabled: bool) -> dict:
        user = self.users.update(user_id, enabled=enabled)
        log_security_event("admin_user_enabled" if enabled else "admin_user_disabled", {"user_id": user_id})
        return user

    def delete_user(self, user_id: str) -> int:
        """Delete a user and their stored queries. Returns the number of queries removed."""
        if self.users.get(user_id) is None:
            raise NotFound(f"Usuario {user_id} no encontrado")
        removed = self.queries.delete_for_user(user_id)
        self.users.delete(user_id)
        log_security_event("admin_user_deleted", {"user_id": user_id, "queries_removed": removed})
        return removed

    def promote_to_admin(self, email: str) -> dict:
        """Give the admin role to an allow-listed email (ALLOWED_PROMOTION_EMAILS)."""
        if not email or not _EMAIL_RE.match(email):
            log_security_event("invalid_email_format", {"email": _mask_email(email or "")})
            raise ValidationError("Formato de email no válido")
        if not self.allowed_promotion_emails:
            log_security_event("no_allowed_emails_configured", {})
            raise AccessDenied("La promoción de administradores no está configurada")
        if email.lower() not in self.allowed_promotion_emails:
            log_security_event("unauthorized_promotion_attempt", {"email": _mask_email(email)})
            raise AccessDenied("Email no autorizado para promoción")

        user = self.users.get_by_email(email)
        if user is None:
            raise NotFound("Usuario no encontrado")
        promoted = self.users.update(user["id"], role="admin")
        log_security_event("admin_promotion_success", {"email": _mask_email(email)})
        return promoted

    def stats(self, now: Optional[datetime] = None) -> dict:
        now = now or datetime.now()
        return {
            "users_by_role": self.users.count_by_role(),
            "total_queries": self.queries.count_all(),
            "queries_today": self.queries.count_all(since=start_of_day(now)),
            "queries_this_month": self.queries.count_all(since=start_of_month(now)),
            "recent_queries": [
                {k: q[k] for k in ("id", "user_id", "prompt", "timestamp")}
                for q in self.queries.recent(limit=10)
            ],
        }
