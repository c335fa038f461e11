"""
Database setup command for the Step Photo Verification Service

Creates the slot commit tables. ``--reset`` drops them first, which deletes
every committed slot record; payload files in the snapshot folder are kept.
"""

import argparse
import asyncio
from pathlib import Path
from typing import List, Optional

from sqlalchemy import create_engine, inspect

from photo_verification.core.config import settings
from photo_verification.core.database import Base, init_db
from photo_verification.models.slot import PhotoSnapshot, SlotCommit


def _ensure_sqlite_directory(database_url: str):
    """Create the directory of a file-backed SQLite database"""
    if database_url.startswith("sqlite:///"):
        db_path = Path(database_url.replace("sqlite:///", "", 1))
        if db_path.parent != Path("."):
            db_path.parent.mkdir(parents=True, exist_ok=True)


async def create_tables(database_url: str, reset: bool = False) -> List[str]:
    """
    Create all database tables

    Args:
        database_url: SQLAlchemy URL of the target database
        reset: Drop the slot commit tables before creating them

    Returns:
        Names of the tables present afterwards
    """
    _ensure_sqlite_directory(database_url)
    engine = create_engine(database_url)
    try:
        if reset:
            print("🗑️ Dropping slot commit tables...")
            Base.metadata.drop_all(bind=engine, tables=[PhotoSnapshot.__table__, SlotCommit.__table__])

        print("🔄 Creating database tables...")
        await init_db(bind=engine)
        return sorted(inspect(engine).get_table_names())
    finally:
        engine.dispose()


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(description='Create the photo verification database tables')
    parser.add_argument('--database-url', default=settings.database_url, help='Database URL (defaults to DATABASE_URL)')
    parser.add_argument('--reset', action='store_true', help='Drop existing slot commit tables first')

    args = parser.parse_args(argv)

    print("🚀 Starting database migration...")
    tables = asyncio.run(create_tables(args.database_url, reset=args.reset))
    print(f"🎉 Database ready with tables: {', '.join(tables)}")
    return tables


if __name__ == "__main__":
    main()
