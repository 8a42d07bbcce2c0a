#!/usr/bin/env python3
"""Database initialization script for SocialBot.

Creates all tables and, when FACEBOOK_PAGE_ID and
FACEBOOK_PAGE_ACCESS_TOKEN are set in the environment, stores them in the
settings row.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy.exc import SQLAlchemyError

from socialbot.core.db import AsyncSessionLocal, create_all
from socialbot.core.repositories import get_settings_row, upsert_settings
from socialbot.core.settings import get_settings
from socialbot.generation.trends import load_fallback_topics

settings = get_settings()


def display_db_url(url: str) -> str:
    """Database location without credentials."""
    return url.split("@", 1)[1] if "@" in url else url


async def seed_settings(session) -> bool:
    """Store Facebook credentials from the environment in the settings row."""
    if not (settings.facebook_page_id and settings.facebook_page_access_token):
        row = await get_settings_row(session)
        if row is None:
            await upsert_settings(session, {})
            print("✅ Created empty settings row")
        return False

    await upsert_settings(session, {
        "facebook_page_id": settings.facebook_page_id,
        "facebook_page_access_token": settings.facebook_page_access_token,
    })
    print(f"✅ Stored Facebook credentials for page {settings.facebook_page_id}")
    return True


async def main():
    """Main initialization function."""
    print("🌱 Initializing SocialBot database...")

    try:
        print("\n📊 Creating database tables...")
        await create_all()
        print("✅ Database tables ready")

        async with AsyncSessionLocal() as session:
            credentials_stored = await seed_settings(session)

        fallback_topics = load_fallback_topics(settings.trends_fallback_file)

        print("\n" + "=" * 60)
        print("🎉 DATABASE INITIALIZATION COMPLETE!")
        print("=" * 60)
        print(f"🔗 Database: {display_db_url(settings.db_url)}")
        print(f"📘 Facebook credentials stored: {'yes' if credentials_stored else 'no'}")
        print(f"🧩 Fallback topics: {', '.join(fallback_topics)}")
        print("=" * 60)
        return 0

    except (OSError, SQLAlchemyError) as e:
        print(f"❌ Error during initialization: {e}")
        return 1


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
