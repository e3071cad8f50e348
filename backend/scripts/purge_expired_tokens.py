"""Delete expired credentials and out-of-retention invite access logs.

Standalone script for a cron or container job.

Usage:
    cd backend && python -m scripts.purge_expired_tokens
"""

import asyncio
import logging
import sys

from guestgate.core.database import async_session_factory, engine
from guestgate.services.maintenance import PurgeError, run_purge

logger = logging.getLogger(__name__)


async def main() -> int:
    """CLI entry point: run one purge pass against the configured database."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        async with async_session_factory() as session:
            result = await run_purge(session)
            await session.commit()
    except PurgeError:
        return 1
    finally:
        await engine.dispose()

    logger.info("Final counts: %s", result)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
