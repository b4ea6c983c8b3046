"""
Create the rule store schema.

Usage:
    kure-db-setup                          # DATABASE_URL_APP from the environment
    kure-db-setup --database-url sqlite:///./rules.db
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from app.core.config import Settings
from app.core.db import create_fresh_async_engine, create_schema

logger = logging.getLogger(__name__)


async def _setup(url: str) -> None:
    engine = create_fresh_async_engine(url)
    try:
        await create_schema(engine)
    finally:
        await engine.dispose()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="kure-db-setup", description=__doc__.splitlines()[1])
    parser.add_argument("--database-url", help="Override DATABASE_URL_APP")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    if args.database_url:
        url = Settings(database_url_app=args.database_url).async_url
    else:
        url = Settings().async_url

    asyncio.run(_setup(url))
    logger.info("Schema created")
