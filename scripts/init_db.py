"""Initialise the chat cache schema, optionally backing up or restoring chats.

Run once to create all tables:
    python -m scripts.init_db

Backup / restore every conversation as JSON:
    python -m scripts.init_db --export chats.json
    python -m scripts.init_db --import chats.json
"""

import argparse
import asyncio
import json

from sentencify.db.chat_cache import SqlChatCache
from sentencify.db.models import Base
from sentencify.db.session import DATABASE_URL, create_session_factory
from sentencify.utils.logging import configure_logging, get_logger, log

MODULE = "init_db"
logger = get_logger()


async def init(export_path: str = None, import_path: str = None) -> None:
    log.info(logger, MODULE, "init_start", "Creating tables",
             url=DATABASE_URL.split("@")[-1])  # log host only

    engine, factory = create_session_factory()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    cache = SqlChatCache(factory)
    if import_path:
        with open(import_path, encoding="utf-8") as f:
            count = await cache.import_all(json.load(f))
        log.info(logger, MODULE, "import_done", "Chats restored", conversations=count, path=import_path)
    if export_path:
        data = await cache.export_all()
        with open(export_path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        log.info(logger, MODULE, "export_done", "Chats exported", conversations=len(data), path=export_path)

    await engine.dispose()
    log.info(logger, MODULE, "init_done", "Database ready")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--export", dest="export_path", help="write every conversation to this JSON file")
    parser.add_argument("--import", dest="import_path", help="load conversations from this JSON file")
    args = parser.parse_args()

    configure_logging()
    asyncio.run(init(args.export_path, args.import_path))
