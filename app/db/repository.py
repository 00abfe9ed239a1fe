"""
Data access for the queries and users tables.

Repositories take a session factory (sessionmaker) rather than a session so
they can be called from worker threads; each call opens and closes its own
session.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.models import QueryRecord, UserAccount, ROLES
from app.errors import NotFound, PersistenceFailure, ValidationError
from app.models import SearchContext

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


class QueryRepository:
    """Reads and writes QueryRecord rows."""

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    def insert_query(
        self,
        user_id: Optional[str],
        prompt: str,
        response: str,
        search_context: Optional[SearchContext] = None,
        timestamp: Optional[datetime] = None,
    ) -> str:
        """Insert an answered query and return its id. Raises PersistenceFailure."""
        record = QueryRecord(
            user_id=user_id,
            prompt=prompt,
            response=response,
            timestamp=timestamp or datetime.now(),
        )
        if search_context is not None:
            record.pubmed_references = search_context.articles_snapshot()
            record.keywords = list(search_context.keywords)
            record.translated_query = search_context.translated_query
            record.search_type = search_context.search_type
            record.selected_keyword = search_context.selected_keyword

        try:
            with self.session_factory() as session:
                session.add(record)
                session.commit()
                return record.id
        except SQLAlchemyError as e:
            raise PersistenceFailure("insert_query", str(e)) from e

    def update_summary(self, query_id: str, summary: str, user_id: Optional[str] = None) -> bool:
        """
        Set the summary of a query exactly once.

        Returns False when the row is missing, owned by someone else, or already
        summarized.
        """
        try:
            with self.session_factory() as session:
                record = session.get(QueryRecord, query_id)
                if record is None or record.summary is not None:
                    return False
                if user_id is not None and record.user_id != user_id:
                    return False
                record.summary = summary
                session.commit()
                return True
        except SQLAlchemyError as e:
            raise PersistenceFailure("update_summary", str(e)) from e

    def get_query(self, query_id: str) -> Optional[dict]:
        with self.session_factory() as session:
            record = session.get(QueryRecord, query_id)
            return record.to_dict() if record else None

    def count_between(self, user_id: str, start: datetime, end: datetime) -> int:
        """Count a user's queries with start <= timestamp < end."""
        with self.session_factory() as session:
            stmt = (
                select(func.count(QueryRecord.id))
                .where(QueryRecord.user_id == user_id)
                .where(QueryRecord.timestamp >= start)
                .where(QueryRecord.timestamp < end)
            )
            return session.execute(stmt).scalar_one()

    def list_history(self, user_id: str, start: datetime, end: datetime) -> List[dict]:
        """Queries for a user within [start, end], newest first."""
        with self.session_factory() as session:
            stmt = (
                select(QueryRecord)
                .where(QueryRecord.user_id == user_id)
                .where(QueryRecord.timestamp >= start)
                .where(QueryRecord.timestamp <= end)
                .order_by(QueryRecord.timestamp.desc())
            )
            return [r.to_dict() for r in session.execute(stmt).scalars()]

    def recent(self, limit: int = 10) -> List[dict]:
        with self.session_factory() as session:
            stmt = select(QueryRecord).order_by(QueryRecord.timestamp.desc()).limit(limit)
            return [r.to_dict() for r in session.execute(stmt).scalars()]

    def count_all(self, since: Optional[datetime] = None) -> int:
        with self.session_factory() as session:
            stmt = select(func.count(QueryRecord.id))
            if since is not None:
                stmt = stmt.where(QueryRecord.timestamp >= since)
            return session.execute(stmt).scalar_one()

    def delete_for_user(self, user_id: str) -> int:
        with self.session_factory() as session:
            deleted = session.query(QueryRecord).filter(QueryRecord.user_id == user_id).delete()
            session.commit()
            return deleted


class UserRepository:
    """Reads and writes UserAccount rows."""

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    def get(self, user_id: str) -> Optional[dict]:
        with self.session_factory() as session:
            user = session.get(UserAccount, user_id)
            return user.to_dict() if user else None

    def get_by_email(self, email: str) -> Optional[dict]:
        with self.session_factory() as session:
            stmt = select(UserAccount).where(func.lower(UserAccount.email) == email.lower())
            user = session.execute(stmt).scalars().first()
            return user.to_dict() if user else None

    def create(self, user_id: str, email: Optional[str], role: str = "free", enabled: bool = True) -> dict:
        if role not in ROLES:
            raise ValidationError(f"Rol desconocido: {role}")
        with self.session_factory() as session:
            user = UserAccount(id=user_id, email=email, role=role, enabled=enabled)
            session.add(user)
            session.commit()
            return user.to_dict()

    def list_users(self) -> List[dict]:
        with self.session_factory() as session:
            stmt = select(UserAccount).order_by(UserAccount.created_at.desc())
            return [u.to_dict() for u in session.execute(stmt).scalars()]

    def update(self, user_id: str, **fields) -> dict:
        """Update role/enabled/counters on a user. Raises NotFound."""
        if "role" in fields and fields["role"] not in ROLES:
            raise ValidationError(f"Rol desconocido: {fields['role']}")
        with self.session_factory() as session:
            user = session.get(UserAccount, user_id)
            if user is None:
                raise NotFound(f"Usuario {user_id} no encontrado")
            for key, value in fields.items():
                setattr(user, key, value)
            session.commit()
            return user.to_dict()

    def set_counters(self, user_id: str, daily_count: int, monthly_count: int) -> None:
        try:
            with self.session_factory() as session:
                user = session.get(UserAccount, user_id)
                if user is None:
                    return
                user.daily_count = daily_count
                user.monthly_count = monthly_count
                session.commit()
        except SQLAlchemyError as e:
            raise PersistenceFailure("set_counters", str(e)) from e

    def delete(self, user_id: str) -> bool:
        with self.session_factory() as session:
            user = session.get(UserAccount, user_id)
            if user is None:
                return False
            session.delete(user)
            session.commit()
            return True

    def count_by_role(self) -> Dict[str, int]:
        with self.session_factory() as session:
            stmt = select(UserAccount.role, func.count(UserAccount.id)).group_by(UserAccount.role)
            return {role: count for role, count in session.execute(stmt)}
