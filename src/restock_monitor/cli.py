#!/usr/bin/env python3
"""
Command line entry point

    restock-monitor init                 - write config/monitor_config.json
    restock-monitor monitor [--production]
    restock-monitor check <store_url>    - one feed fetch, print what is in stock
"""
import argparse
import asyncio
import logging
import signal
import sys

from .config import DEFAULT_CONFIG_PATH, Settings, write_default_config
from .exceptions import ConfigError, TransientFetchError
from .log_setup import setup_logging
from .monitoring import check_snapshot
from .runner import RestockRunner


def print_banner():
    print("""
    ================================================
    RESTOCK MONITOR - products.json watch + checkout
    ================================================
    """)


def cmd_init(args) -> int:
    if write_default_config(args.config):
        print(f"✓ Created default config at {args.config}")
        print("Next step: add targets, then run: restock-monitor monitor")
    else:
        print(f"✓ Config already exists at {args.config}")
    return 0


def cmd_check(args) -> int:
    try:
        snapshot = check_snapshot(args.store_url, timeout=args.timeout)
    except TransientFetchError as e:
        print(f"ERROR: {e}")
        return 1

    available = snapshot.available_variants()
    print(f"{len(snapshot.products)} products, {snapshot.variant_count()} variants, {len(available)} available")
    for product, variant in available[:args.limit]:
        options = ' / '.join(variant.options)
        print(f"  {variant.id:>14}  {product.name[:50]:<50}  {options}")
    return 0


async def run_monitor(runner: RestockRunner):
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, runner.stop, f'signal {sig.name}')
        except (NotImplementedError, RuntimeError):
            # add_signal_handler is unavailable on Windows event loops
            pass
    return await runner.run()


def cmd_monitor(args) -> int:
    try:
        settings = Settings.load(args.config)
    except ConfigError as e:
        print(f"ERROR: {e}")
        print("Run: restock-monitor init")
        return 1

    if args.production:
        settings.settings['mode'] = 'production'
    setup_logging(settings.logging_settings)
    logger = logging.getLogger(__name__)

    if not settings.enabled_targets():
        print("ERROR: No enabled targets to monitor")
        return 1

    print_banner()
    runner = RestockRunner(settings, max_cycles=args.max_cycles)
    try:
        results = asyncio.run(run_monitor(runner))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130

    return 0 if results and all(r['success'] for r in results) else 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='restock-monitor', description='Shopify restock monitor')
    parser.add_argument('--config', default=DEFAULT_CONFIG_PATH, help='Path to the JSON config file')
    sub = parser.add_subparsers(dest='command')

    sub.add_parser('init', help='Write the default config file')

    monitor = sub.add_parser('monitor', help='Monitor all enabled targets')
    monitor.add_argument('--production', action='store_true', help='Check out after carting')
    monitor.add_argument('--max-cycles', type=int, default=None, help='Stop each target after N polls')

    check = sub.add_parser('check', help='Fetch a store feed once and list available variants')
    check.add_argument('store_url')
    check.add_argument('--timeout', type=float, default=10)
    check.add_argument('--limit', type=int, default=25)
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    commands = {'init': cmd_init, 'monitor': cmd_monitor, 'check': cmd_check}
    if args.command not in commands:
        parser.print_help()
        return 1
    return commands[args.command](args)


if __name__ == '__main__':
    sys.exit(main())
