#!/usr/bin/env python3
"""
Probe pages of the upstream buyers endpoint through the proxy.

Prints item counts and the reported total for each requested page, stopping
at the first empty page or error. Useful for checking which pagination
parameter the upstream honours and where the data actually ends.

Usage:
    python scripts/probe_pages.py 1 2 3
    python scripts/probe_pages.py --start 44 --count 10 --page-size 100
    python scripts/probe_pages.py 1 --page-size-param "pagination[pageSize]"
"""

import argparse
import asyncio
import sys

from buyersync.config import get_settings
from buyersync.services.proxy_client import ProxyClient, ProxyClientError

settings = get_settings()


def log(msg):
    """Print with flush for immediate output."""
    print(msg, flush=True)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("pages", nargs="*", type=int, help="Explicit page numbers to probe")
    parser.add_argument("--start", type=int, default=1, help="First page when no pages are given")
    parser.add_argument("--count", type=int, default=5, help="Number of consecutive pages")
    parser.add_argument("--page-size", type=int, default=settings.sync_page_size)
    parser.add_argument("--page-size-param", default=settings.page_size_param)
    parser.add_argument("--endpoint", default=settings.finance_endpoint)
    parser.add_argument("--token", default=settings.finance_token)
    parser.add_argument("--proxy-url", default=settings.proxy_url)
    return parser.parse_args(argv)


async def probe(args: argparse.Namespace) -> int:
    """Probe pages; returns a process exit code."""
    client = ProxyClient(
        proxy_url=args.proxy_url,
        endpoint=args.endpoint,
        token=args.token,
        page_size_param=args.page_size_param,
    )
    pages = args.pages or list(range(args.start, args.start + args.count))

    log(f"Probing {args.endpoint} via {args.proxy_url} ({args.page_size_param}={args.page_size})")
    for page in pages:
        try:
            result = await client.fetch_page(page, args.page_size)
        except ProxyClientError as e:
            log(f"[EXCEPTION] Page {page}: {e}")
            return 1

        if not result.ok:
            log(f"[ERROR] Page {page}: {result.error}")
            return 1

        items = result.items
        ids = [item.get("id") for item in items if isinstance(item, dict)]
        id_range = f" ids {ids[0]}..{ids[-1]}" if ids else ""
        log(f"Page {page}: {len(items)} items (total: {result.total}){id_range}")

        if not items:
            log("[STOP] Reached empty page.")
            break

    return 0


if __name__ == "__main__":
    arguments = parse_args()
    if not arguments.token:
        log("Error: no token. Set FINANCE_TOKEN or pass --token.")
        sys.exit(1)

    sys.exit(asyncio.run(probe(arguments)))
