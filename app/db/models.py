"""
Database models for Salustia.

SCHEMA OVERVIEW
===============================================================================

TABLE: users - Accounts managed by the admin surface
-------------------------------------------------------------------------------
id                VARCHAR       PRIMARY KEY        Identity from the auth provider
email             VARCHAR       UNIQUE
role              VARCHAR       DEFAULT 'free'     'free' | 'premium' | 'test' | 'admin'
enabled           BOOLEAN       DEFAULT TRUE       Disabled users cannot submit queries
daily_count       INTEGER       DEFAULT 0          Convenience copy, recomputed after each insert
monthly_count     INTEGER       DEFAULT 0          Convenience copy, recomputed after each insert
created_at        TIMESTAMP     DEFAULT NOW()

INDEX: idx_users_role ON role


TABLE: queries - One row per answered question
-------------------------------------------------------------------------------
id                VARCHAR       PRIMARY KEY        uuid4
user_id           VARCHAR                          NULL for guests
prompt            TEXT          NOT NULL
response          TEXT                             NULL until the LLM call completes
summary           TEXT                             Filled once by the summary step
timestamp         TIMESTAMP     NOT NULL           Local time, used by quota windows
pubmed_references JSONB                            Snapshot of BibliographicArticle dicts
keywords          JSONB                            Extracted search keywords
translated_query  TEXT
search_type       VARCHAR                          'AND' | 'OR'
selected_keyword  VARCHAR

INDEX: idx_queries_user_timestamp ON (user_id, timestamp)

The authoritative usage counters are COUNT(*) over queries within the day and
month windows; users.daily_count/monthly_count are display copies only.
"""
from datetime import datetime
import uuid

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, JSON, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from .database import Base

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

ROLES = ("free", "premium", "test", "admin")


class UserAccount(Base):
    """Account row; role drives quota ceilings, enabled gates submission."""
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, unique=True)
    role = Column(String, default="free", nullable=False)
    enabled = Column(Boolean, default=True, nullable=False)

    daily_count = Column(Integer, default=0, nullable=False)
    monthly_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.now, nullable=False)

    __table_args__ = (
        Index('idx_users_role', 'role'),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "enabled": self.enabled,
            "daily_count": self.daily_count,
            "monthly_count": self.monthly_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<UserAccount(id={self.id}, role={self.role}, enabled={self.enabled})>"


class QueryRecord(Base):
    """A persisted question/answer exchange."""
    __tablename__ = "queries"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=True)

    prompt = Column(Text, nullable=False)
    response = Column(Text)
    summary = Column(Text)

    timestamp = Column(DateTime, default=datetime.now, nullable=False)

    # Search context snapshot
    pubmed_references = Column(JSONType)
    keywords = Column(JSONType)
    translated_query = Column(Text)
    search_type = Column(String)
    selected_keyword = Column(String)

    __table_args__ = (
        Index('idx_queries_user_timestamp', 'user_id', 'timestamp'),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "prompt": self.prompt,
            "response": self.response,
            "summary": self.summary,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "pubmed_references": self.pubmed_references,
            "keywords": self.keywords,
            "translated_query": self.translated_query,
            "search_type": self.search_type,
            "selected_keyword": self.selected_keyword,
        }

    def __repr__(self):
        return f"<QueryRecord(id={self.id}, user_id={self.user_id}, prompt={self.prompt[:50]}...)>"
