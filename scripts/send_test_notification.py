#!/usr/bin/env python3
"""
Send Test Notifications

Pushes one message of each kind (startup, downtime detected, downtime
confirmed, recovered) through the configured notification sink so the
Telegram credentials can be checked without waiting for a real outage.
"""

import argparse
import asyncio
import os
import sys
from datetime import timedelta

# Add backend to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../backend'))

from config import settings
from services.notification_service import create_notification_sink
from utils.timing import utcnow


async def main():
    """Main CLI interface."""
    parser = argparse.ArgumentParser(description='Send test notifications through the configured sink')
    parser.add_argument(
        '--kind',
        choices=['startup', 'detected', 'confirmed', 'recovered', 'all'],
        default='all',
        help='Which notification to send'
    )
    parser.add_argument('--event-id', type=int, default=0, help='Downtime event id shown in the messages')
    args = parser.parse_args()

    sink = create_notification_sink(settings)
    if not sink.is_enabled:
        print("❌ Notifications are disabled: set TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID")
        sys.exit(1)

    now = utcnow()
    started_at = now - timedelta(milliseconds=settings.DOWNTIME_CONFIRMATION_DELAY + 60_000)
    kinds = ['startup', 'detected', 'confirmed', 'recovered'] if args.kind == 'all' else [args.kind]

    for kind in kinds:
        if kind == 'startup':
            await sink.startup()
        elif kind == 'detected':
            await sink.downtime_detected(args.event_id, started_at, settings.HEARTBEAT_TIMEOUT)
        elif kind == 'confirmed':
            await sink.downtime_confirmed(args.event_id, started_at, settings.DOWNTIME_CONFIRMATION_DELAY)
        else:
            await sink.recovered(args.event_id, started_at, now)
        print(f"📨 Sent '{kind}' notification")


if __name__ == "__main__":
    asyncio.run(main())
