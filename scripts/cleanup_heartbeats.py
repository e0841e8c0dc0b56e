#!/usr/bin/env python3
"""
Heartbeat Retention Cleanup

Deletes heartbeats older than the retention period (HEARTBEAT_RETENTION_DAYS
unless --days is given). Downtime events are kept.
"""

import argparse
import asyncio
import os
import sys

# Add backend to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../backend'))

from config import settings
from database.database import db_manager
from services.heartbeat_service import heartbeat_service


async def main():
    """Main CLI interface."""
    parser = argparse.ArgumentParser(description='Delete old heartbeats')
    parser.add_argument('--days', type=int, default=settings.HEARTBEAT_RETENTION_DAYS, help='Days of heartbeats to keep')
    args = parser.parse_args()

    if args.days < 1:
        parser.error("--days must be at least 1")

    try:
        deleted = await heartbeat_service.cleanup_old_heartbeats(days_to_keep=args.days)
        print(f"🧹 Deleted {deleted} heartbeats older than {args.days} days")
    finally:
        await db_manager.close()


if __name__ == "__main__":
    asyncio.run(main())
