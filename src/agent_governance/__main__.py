"""
Entry point for schedulers that trigger governance runs.

`python -m agent_governance` runs one cycle over every scope and exits;
`--scope` restricts it to a single scope and `--loop` keeps the process alive,
re-running on the configured interval. Settings come from `GOVERNANCE_*`
environment variables.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .config import GovernanceSettings
from .errors import GovernanceError
from .logging_utils import configure_logging
from .scheduler import GovernanceScheduler
from .service import GovernanceService

LOGGER = logging.getLogger(__name__)


async def _run_forever(scheduler: GovernanceScheduler) -> None:
    await scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        await scheduler.shutdown()


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="agent_governance", description="Recompute tool rank scores")
    parser.add_argument("--scope", help="Run a single scope ('global' or a context name)")
    parser.add_argument("--loop", action="store_true", help="Keep running on the configured interval")
    args = parser.parse_args(argv)

    settings = GovernanceSettings()
    configure_logging(settings)
    service = GovernanceService.from_settings(settings)

    if args.loop:
        try:
            asyncio.run(_run_forever(GovernanceScheduler(service)))
        except KeyboardInterrupt:
            LOGGER.info("Interrupted; exiting")
        return 0

    if args.scope:
        try:
            service.run_governance(args.scope)
        except GovernanceError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        return 0

    results = service.run_all()
    print(f"Ranked {len(results)} scope(s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
