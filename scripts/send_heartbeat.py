#!/usr/bin/env python3
"""
Signed Heartbeat Client

Sends one authenticated heartbeat to a running watcher. Useful to check the
shared secret and clock skew from the appliance side.

The signature covers the path WITHOUT the API prefix and the exact body bytes,
so the body is serialized once and sent as-is.
"""

import argparse
import json
import os
import sys
from datetime import datetime, timezone

import httpx

# Add backend to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../backend'))

from config import settings
from services.request_authenticator import sign_request


def send_heartbeat(base_url: str, api_prefix: str, secret: str, payload: dict) -> httpx.Response:
    path = "/heartbeat"
    body = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    headers = sign_request("POST", path, body, secret)
    headers["Content-Type"] = "application/json"

    return httpx.post(
        f"{base_url.rstrip('/')}{api_prefix}{path}",
        content=body,
        headers=headers,
        timeout=10.0,
    )


def main():
    parser = argparse.ArgumentParser(description='Send a signed heartbeat')
    parser.add_argument('--url', default=f"http://{settings.HOST}:{settings.PORT}", help='Watcher base URL')
    parser.add_argument('--state', default='up', help='connection_state to report')
    parser.add_argument('--ipv4', help='IPv4 address to report')
    args = parser.parse_args()

    secret = settings.api_secret_value
    if not secret:
        print("❌ API_SECRET is not configured")
        sys.exit(1)

    payload = {
        "connection_state": args.state,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if args.ipv4:
        payload["ipv4"] = args.ipv4

    try:
        response = send_heartbeat(args.url, settings.API_PREFIX, secret, payload)
    except httpx.HTTPError as e:
        print(f"❌ Request failed: {e}")
        sys.exit(1)

    print(f"HTTP {response.status_code}: {response.text}")
    sys.exit(0 if response.status_code == 200 else 1)


if __name__ == "__main__":
    main()
