#!/usr/bin/env python3
"""Seed the permission catalogue, default groups and sample API identities.

Reads DATABASE_URL from backend/.env or environment. Idempotent.
"""
from __future__ import annotations

import argparse
import asyncio
import logging

from apiserver.core.config import get_settings
from apiserver.db.session import create_all, get_async_engine, get_session_maker
from apiserver.services.seed import default_identities, seed

logger = logging.getLogger("seed_access")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--admin-key", default="admin-api-key-789")
    parser.add_argument("--viewer-key", default="test-api-key-123")
    parser.add_argument("--expired-key", default="test-api-key-456")
    return parser.parse_args()


async def main(args: argparse.Namespace) -> int:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    # Ensure tables exist (in case migrations were not run)
    await create_all(settings)
    identities = default_identities(
        admin_key=args.admin_key,
        viewer_key=args.viewer_key,
        expired_key=args.expired_key,
    )
    created = await seed(get_session_maker(settings), identities)
    await get_async_engine(settings).dispose()

    logger.info(
        "Seeded %d permissions, %d groups, %d identities",
        created["permissions"],
        created["groups"],
        created["access"],
    )
    for item in identities:
        logger.info("%s <%s> key=%s group=%s", item.name, item.email, item.api_key, item.group)
    return 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main(parse_args())))
