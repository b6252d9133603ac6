"""
Command-line interface: serve the API, or watch a page and export its session.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import dotenv

from jsinspector import config
from jsinspector.utils import logger

log = logger.create_logger("CLI")


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    from jsinspector import app as app_mod

    settings = config.get_settings()
    uvicorn.run(app_mod.create_app(), host=args.host or settings.host, port=args.port or settings.port)
    return 0


def _watch(args: argparse.Namespace) -> int:
    from jsinspector import inspector as inspector_mod
    from jsinspector.browser import cdp_host
    from jsinspector.reports import export
    from jsinspector.storage import kv

    settings = config.get_settings()
    store = kv.JsonFileStore(settings.store_path) if args.persist else kv.MemoryStore()
    inspector = inspector_mod.ScriptInspector(store, settings)

    async def run() -> str | None:
        await inspector.load_state()
        return await cdp_host.watch(args.url, inspector, seconds=args.seconds, headless=not args.headed)

    bucket_key = asyncio.run(run())
    bucket = inspector.buckets.get_bucket(bucket_key) if bucket_key else None
    if bucket is None:
        log.warn("No session recorded", {"url": args.url})
        return 1
    if args.format == "csv":
        print(export.to_csv(bucket.records))
    else:
        print(export.to_json(bucket.records, bucket.origin, bucket.tab_id))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jsinspector",
        description="Explain why scripts on a page executed or were blocked.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the message and export API.")
    serve.add_argument("--host", default=None, help="Bind address (default from UVICORN_HOST).")
    serve.add_argument("--port", type=int, default=None, help="Port (default from UVICORN_PORT).")
    serve.set_defaults(func=_serve)

    watch = sub.add_parser("watch", help="Open a URL in Chromium and export its script records.")
    watch.add_argument("url", help="Page to open.")
    watch.add_argument("--seconds", type=float, default=10.0, help="How long to observe after load.")
    watch.add_argument("--format", choices=("csv", "json"), default="json")
    watch.add_argument("--headed", action="store_true", help="Show the browser window.")
    watch.add_argument("--persist", action="store_true", help="Save the session to the configured store.")
    watch.set_defaults(func=_watch)
    return parser


def main(argv: list[str] | None = None) -> int:
    dotenv.load_dotenv()
    args = build_parser().parse_args(argv)
    logger.set_debug(config.get_settings().debug_logging)
    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\n[jsinspector] Interrupted.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
