"""Ingest runner entry point.

Ingests every stored document that is not yet completely ingested. Documents
left PARTIAL by failed parent chunks are retried the same way.

Usage:
    python -m services.runtime.ingest_runner
"""

import asyncio

from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging
from services.runtime.RagRuntime import RagRuntime


async def main() -> None:
    """Run one ingestion pass over all incomplete documents."""
    logger = setup_logging()
    config = HelperConfig(logger=logger)

    async with RagRuntime(helper_config=config) as runtime:
        succeeded = await runtime.ingestion_service.ingest_incomplete_documents()
        logger.info("Ingestion pass finished, %d documents ingested.", succeeded, color="green")


if __name__ == "__main__":
    asyncio.run(main())
