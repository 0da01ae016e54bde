#!/usr/bin/env python3
"""Create the shared Qdrant collection and its payload indexes.

Safe to run repeatedly. Run with: python scripts/ensure_collection.py
"""

import asyncio
import logging

from askly.core.config import get_settings
from askly.core.logging import setup_logging
from askly.rag.vector_store import get_vector_store

logger = logging.getLogger("askly.scripts.ensure_collection")


async def ensure_collection() -> None:
    settings = get_settings()
    setup_logging(settings)

    store = get_vector_store()
    created = await store.ensure_collection()
    info = await store.get_collection_info()

    if created:
        logger.info(f"Created collection '{store.collection_name}' at {settings.qdrant_url}")
    else:
        logger.info(f"Collection '{store.collection_name}' already exists")
    if info:
        logger.info(f"Points: {info['points_count']}, status: {info['status']}")


if __name__ == "__main__":
    asyncio.run(ensure_collection())
