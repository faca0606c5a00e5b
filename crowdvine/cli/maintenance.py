"""Scheduled maintenance jobs for CrowdVine, meant to be run from cron.

Commands:
    reset-quotas          Reset every member's monthly invite quota
    seed-zones            Create the standard Swedish delivery zones
    cleanup-invitations   Delete expired and used-up invitation codes
    check-pallets         Run the completion check on every open pallet
"""

import argparse
import asyncio
import logging
import sys

from crowdvine.database import close_db, init_db
from crowdvine.services.invitations import cleanup_invitations
from crowdvine.services.membership import reset_monthly_quotas
from crowdvine.services.pallets import check_open_pallets
from crowdvine.services.payments import PaymentError
from crowdvine.services.zones import seed_swedish_zones

logger = logging.getLogger("crowdvine.maintenance")


async def run_reset_quotas() -> str:
    return f"Reset invite quotas for {await reset_monthly_quotas()} memberships."


async def run_seed_zones() -> str:
    created = await seed_swedish_zones()
    names = ", ".join(z.name for z in created) or "none"
    return f"Created {len(created)} zones: {names}."


async def run_cleanup_invitations() -> str:
    return f"Deleted {await cleanup_invitations()} invitation codes."


async def run_check_pallets() -> str:
    completed = await check_open_pallets()
    return f"Completed {len(completed)} pallets."


COMMANDS = {
    "reset-quotas": run_reset_quotas,
    "seed-zones": run_seed_zones,
    "cleanup-invitations": run_cleanup_invitations,
    "check-pallets": run_check_pallets,
}


async def _run(command: str) -> str:
    await init_db()
    try:
        return await COMMANDS[command]()
    finally:
        await close_db()


def main() -> int:
    parser = argparse.ArgumentParser(
        description="CrowdVine maintenance jobs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("command", choices=sorted(COMMANDS), help="Job to run")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log at debug level")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        print(asyncio.run(_run(args.command)))
    except PaymentError as e:
        logger.error("Pallet completion failed: %s", e)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
