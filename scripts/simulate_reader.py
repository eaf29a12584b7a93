#!/usr/bin/env python3
"""
SmartLock — Reader Simulator
============================
Stands in for the NFC reader and keypad during development:

  Card tap / PIN entry
    → SmartLock service (local check, never waits on the network)
    → Log queue (delivered to the directory server by the sync routine)
    → Display (prints the verdict + current data source)

Usage:
  python scripts/simulate_reader.py card <card_id>
  python scripts/simulate_reader.py pin <pin> [--enroll <card_id>]
  python scripts/simulate_reader.py network up|down
  python scripts/simulate_reader.py status

Prerequisites:
  - SmartLock service running on localhost:8001 (python -m smartlock.main)
"""

import argparse
import json
import sys

import httpx

# ─── Config ───────────────────────────────────────────────────────────────────

SMARTLOCK_API = "http://localhost:8001"

# ─── Display ──────────────────────────────────────────────────────────────────

def show_access(result: dict) -> None:
    mark = "✅" if result["authorized"] else "❌"
    print(f"  {mark} {result['verdict'].upper():5}  {result['reason']}")
    print(f"     data source: {result['data_source']}")
    if result.get("card_enrollment_required"):
        print("     ⚠️  PIN has no card enrolled: tap a card with --enroll to bind it")


# ─── Commands ─────────────────────────────────────────────────────────────────

def tap_card(client: httpx.Client, card_id: str) -> None:
    resp = client.post("/access/card", json={"card_id": card_id})
    resp.raise_for_status()
    show_access(resp.json())


def enter_pin(client: httpx.Client, pin: str, enroll: str | None) -> None:
    resp = client.post("/access/pin", json={"pin": pin})
    resp.raise_for_status()
    result = resp.json()
    show_access(result)

    if enroll and result["card_enrollment_required"]:
        resp = client.post("/access/bind-card", json={"pin": pin, "card_id": enroll})
        if resp.status_code == 200:
            print(f"  🔗 Card {enroll} enrolled")
        else:
            print(f"  ❌ Enrollment failed: HTTP {resp.status_code}")


def set_network(client: httpx.Client, state: str) -> None:
    resp = client.post(f"/network/{state}", json={} if state == "up" else None)
    resp.raise_for_status()
    print(f"  🌐 {json.dumps(resp.json())}")


def show_status(client: httpx.Client) -> None:
    resp = client.get("/status")
    resp.raise_for_status()
    for key, value in resp.json().items():
        print(f"  {key:18} {value}")


# ─── Main ──────────────────────────────────────────────────────────────────────

def main() -> int:
    parser = argparse.ArgumentParser(description="SmartLock reader simulator")
    parser.add_argument("--url", default=SMARTLOCK_API, help="SmartLock service URL")
    sub = parser.add_subparsers(dest="command", required=True)

    card = sub.add_parser("card", help="Tap a card")
    card.add_argument("card_id")

    pin = sub.add_parser("pin", help="Enter a PIN")
    pin.add_argument("pin")
    pin.add_argument("--enroll", metavar="CARD_ID", help="Bind this card if the PIN has none")

    network = sub.add_parser("network", help="Report a network link change")
    network.add_argument("state", choices=["up", "down"])

    sub.add_parser("status", help="Show lock status")

    args = parser.parse_args()

    try:
        with httpx.Client(base_url=args.url, timeout=3.0) as client:
            if args.command == "card":
                tap_card(client, args.card_id)
            elif args.command == "pin":
                enter_pin(client, args.pin, args.enroll)
            elif args.command == "network":
                set_network(client, args.state)
            else:
                show_status(client)
    except httpx.ConnectError:
        print(f"  ❌ SmartLock is NOT running at {args.url}")
        return 1
    except httpx.HTTPStatusError as e:
        print(f"  ❌ SmartLock responded with HTTP {e.response.status_code}: {e.response.text}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
