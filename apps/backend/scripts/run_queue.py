"""
Command-line access to the link queue.

    python scripts/run_queue.py enqueue --owner jobs --row 7 https://boards.greenhouse.io/acme/jobs/123
    python scripts/run_queue.py drain --budget 120
    python scripts/run_queue.py resolve https://www.linkedin.com/jobs/view/123
"""

import sys
import json
import asyncio
import logging
from pathlib import Path
from dotenv import load_dotenv

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.config import ConfigurationError, Settings
from app.service import QueueService

logger = logging.getLogger(__name__)


async def resolve_once(service: QueueService, url: str) -> dict:
    """Resolve and decide a single URL without touching the queues."""
    resolution = await service.engine.resolve_and_decide(url)
    return {
        "provider": resolution.outcome.provider,
        "status": resolution.outcome.status,
        "final_url": resolution.outcome.final_url,
        **resolution.decision.to_dict(),
        "engine_tokens": [{"kind": t.kind, "fields": t.fields} for t in resolution.tokens],
    }


async def enqueue_and_drain(service: QueueService, owner: str, row_id: str, url: str,
                            drain: bool) -> dict:
    queued = service.enqueue_link(owner, row_id, url)
    result = {"queued": queued}
    if drain:
        report = await service.drain()
        result["drain"] = report.to_dict()
        result["row"] = service.rows.get_row(owner, row_id)
    return result


def main(argv=None) -> int:
    import argparse

    parser = argparse.ArgumentParser(description='Job link queue tools')
    sub = parser.add_subparsers(dest='command', required=True)

    enqueue = sub.add_parser('enqueue', help='Queue a link for parsing')
    enqueue.add_argument('url', help='Job posting URL')
    enqueue.add_argument('--owner', default='cli', help='Owner/sheet key')
    enqueue.add_argument('--row', default='1', help='Logical row id')
    enqueue.add_argument('--no-drain', action='store_true', help='Only enqueue, do not drain')

    drain = sub.add_parser('drain', help='Drain both queues')
    drain.add_argument('--budget', type=float, default=None, help='Wall-clock budget in seconds')

    resolve = sub.add_parser('resolve', help='Resolve one URL and print the decision')
    resolve.add_argument('url', help='Job posting URL')

    args = parser.parse_args(argv)

    load_dotenv()
    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    logging.basicConfig(level=settings.log_level)

    service = QueueService(settings)

    if args.command == 'enqueue':
        result = asyncio.run(enqueue_and_drain(service, args.owner, args.row, args.url, not args.no_drain))
    elif args.command == 'drain':
        result = asyncio.run(service.drain(args.budget)).to_dict()
    else:
        result = asyncio.run(resolve_once(service, args.url))

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == '__main__':
    sys.exit(main())
