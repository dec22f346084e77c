#!/usr/bin/env python3
"""
Reset database script for local development.
Drops every table, recreates the schema and seeds the compound lifts.
"""

import asyncio
import os
import sys
from pathlib import Path

# Add the src directory to the Python path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./local_dev.db")

from liftwise.db import repo
from liftwise.db.models import Base
from liftwise.one_rep_max import COMPOUND_LIFTS


async def reset_database() -> None:
    """Reset the database by dropping all tables and recreating them."""
    print("Resetting database...")

    await repo.init_db()
    engine = repo._engine
    if not engine:
        print("Failed to initialize database engine")
        return

    async with engine.begin() as conn:
        print("Dropping all tables...")
        await conn.run_sync(Base.metadata.drop_all)
        print("Creating tables from models...")
        await conn.run_sync(Base.metadata.create_all)

    for name in sorted(COMPOUND_LIFTS):
        exercise = await repo.add_exercise(name)
        print(f"   - seeded exercise {exercise.id}: {exercise.name}")

    await repo.close_db()
    print("Database reset complete!")


if __name__ == "__main__":
    asyncio.run(reset_database())
