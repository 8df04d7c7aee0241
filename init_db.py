"""Initialize database schema for the merchant matching service.

Creates all tables and seeds the category catalog.
Run this before starting the API server.
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from config.seed_categories import SEED_CATEGORIES
from market.config import settings
from market.db import AsyncSessionMaker, engine
from market.models import Base
from market.pipelines.catalog import upsert_categories


async def init_database(reset: bool = False):
    """Create all database tables and seed the catalog."""
    print(f"Initializing database: {settings.db.url}")

    async with engine.begin() as conn:
        if reset:
            await conn.run_sync(Base.metadata.drop_all)
            print("✓ Dropped existing tables")

        await conn.run_sync(Base.metadata.create_all)
        print("✓ Created all tables")

    async with AsyncSessionMaker() as session:
        names = await upsert_categories(session, SEED_CATEGORIES)
        await session.commit()
        print(f"✓ Catalog holds {len(names)} seed categories")

    print("\n✅ Database initialization complete!")
    print(f"Tables: {', '.join(Base.metadata.tables.keys())}")


async def main(reset: bool = False):
    """Main entry point."""
    try:
        await init_database(reset=reset)
    except Exception as e:
        print(f"\n❌ Error initializing database: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--reset", action="store_true", help="Drop existing tables first")
    args = parser.parse_args()
    asyncio.run(main(reset=args.reset))
