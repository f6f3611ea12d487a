#!/usr/bin/env python
import asyncio
from datetime import timedelta
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from app.core.config import settings
from app.core.logging import configure_logging
from app.services.admin_service import AdminService
from app.services.retry import RetryPolicy
from app.storage.sql import SqlRepository


async def run() -> None:
    repository = SqlRepository(database_url=settings.database_url)
    try:
        await repository.create_all()
        service = AdminService(repository=repository, retry=RetryPolicy.from_settings(settings))
        removed = await service.reconcile_orphaned_services(
            timedelta(minutes=settings.orphan_grace_minutes)
        )
        print(f"Removed {len(removed)} orphaned services")
    finally:
        await repository.dispose()


def main() -> None:
    configure_logging(settings.log_level.upper())
    asyncio.run(run())


if __name__ == "__main__":
    main()
