"""
Database initialization script for the Event Gate
Run this to create the event_gates and alert_events tables
"""
import sys

from dotenv import load_dotenv
from sqlalchemy import inspect

load_dotenv()

from eventgate.database import configure_database, get_engine, init_db, ping_database
from eventgate.errors import NotInitialized
from eventgate.models import Base


def init_database() -> bool:
    """Initialize database with all tables"""
    print("=" * 70)
    print("Event Gate - Database Initialization")
    print("=" * 70)

    try:
        print("\n[1/3] Connecting to database...")
        configure_database()
        ping_database()
        print("      ✓ Database connection successful")

        print("\n[2/3] Creating database tables...")
        init_db()
        print("      ✓ Tables created successfully")

        print("\n[3/3] Verifying tables...")
        existing = set(inspect(get_engine()).get_table_names())
        missing = [name for name in Base.metadata.tables if name not in existing]
        if missing:
            print(f"      ⚠ Missing tables: {', '.join(missing)}")
            return False
        for name in sorted(Base.metadata.tables):
            print(f"        - {name}")
        return True

    except NotInitialized as e:
        print(f"\n✗ {e}")
        return False
    except Exception as e:
        print(f"\n✗ Database initialization failed: {e}")
        return False


if __name__ == "__main__":
    sys.exit(0 if init_database() else 1)
