#!/usr/bin/env python3
"""
Export the participant roster of an opportunity as CSV.

Uses whichever store STORE_BACKEND selects, so the same command works against
the local database and the remote backend.

Usage:
    python scripts/export_roster.py OPPORTUNITY_ID --actor-id=ID [--admin] [--output=FILE]

Options:
    --actor-id   User id to act as. Must be the host unless --admin is given.
    --admin      Act as an administrator.
    --output     Write to FILE instead of stdout.
"""
import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlmodel import Session

from campuscares.core.config import settings
from campuscares.core.database import engine
from campuscares.core.errors import EngineError
from campuscares.engine.attendance import AttendanceRecorder
from campuscares.models import Viewer
from campuscares.repository import OpportunityRepository
from campuscares.store.remote import RemoteStore
from campuscares.store.sql import SqlOpportunityStore


def export(opportunity_id: int, actor: Viewer) -> str:
    if settings.store_backend == "remote":
        with RemoteStore(
            settings.remote_api_url,
            token=settings.remote_api_token,
            timeout=settings.remote_timeout_seconds,
        ) as store:
            return AttendanceRecorder(OpportunityRepository(store)).roster_csv(actor, opportunity_id)

    with Session(engine) as session:
        store = SqlOpportunityStore(session)
        return AttendanceRecorder(OpportunityRepository(store)).roster_csv(actor, opportunity_id)


def main():
    parser = argparse.ArgumentParser(description="Export an opportunity roster as CSV")
    parser.add_argument("opportunity_id", type=int)
    parser.add_argument("--actor-id", type=int, required=True, help="User id to act as")
    parser.add_argument("--admin", action="store_true", help="Act as an administrator")
    parser.add_argument("--output", type=Path, help="Write to this file instead of stdout")
    args = parser.parse_args()

    actor = Viewer(id=args.actor_id, admin=args.admin)
    try:
        roster = export(args.opportunity_id, actor)
    except EngineError as e:
        print(f"Error: {e.message} ({e.code})", file=sys.stderr)
        if e.retryable:
            print("The store is unavailable; try again later.", file=sys.stderr)
        sys.exit(1)

    if args.output:
        args.output.write_text(roster)
        print(f"Wrote {len(roster.splitlines()) - 1} participants to {args.output}")
    else:
        sys.stdout.write(roster)


if __name__ == "__main__":
    main()
