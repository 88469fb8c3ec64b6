#!/usr/bin/env python3
"""
Create the care plan tables, then check the catalog can serve plans.

Every plan needs a cleanser and an SPF. The script loads the published,
brand-active catalog and reports how many products each step family has,
exiting non-zero when a mandatory family is empty.
"""

import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from app.config import get_settings
from app.database import async_session, engine, init_db
from app.repository import CatalogRepository
from app.services.catalog import CatalogIndex, ProductQuery

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def load_index() -> CatalogIndex:
    async with async_session() as session:
        products = await CatalogRepository(session).query_products(ProductQuery())
    return CatalogIndex.build(products)


async def main() -> int:
    settings = get_settings()
    logger.info(f"Preparing care plan schema on {settings.database_url.rsplit('@', 1)[-1]}")
    try:
        await init_db()
        index = await load_index()
    finally:
        await engine.dispose()

    for base, count in index.coverage().items():
        logger.info(f"  {base.value:<15} {count} products")

    missing = [base.value for base in index.missing_mandatory()]
    if missing:
        logger.error(f"No published products for mandatory steps: {missing}; plan generation will fail")
        return 1
    logger.info("Catalog covers every mandatory step")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
