"""
Initialize the database and create tables.

Run this script to set up your database:
    python -m app.db.init_db
"""
from sqlalchemy.engine import Engine

from .database import engine, Base
from .models import QueryRecord, UserAccount  # noqa: F401  (register tables on Base.metadata)


def init_db(bind: Engine = engine):
    """Create all tables with indexes"""

    print("Initializing database...")

    # Create all tables (SQLAlchemy will create indexes defined in __table_args__)
    Base.metadata.create_all(bind=bind)
    print("✓ Database tables created")

    print("\nTables created:")
    print("  - users (accounts, roles, enabled flag, display counters)")
    print("  - queries (prompt, response, summary, search context snapshot)")
    print("\nIndexes created:")
    print("  - INDEX(role) on users")
    print("  - INDEX(user_id, timestamp) on queries")


if __name__ == "__main__":
    init_db()
