"""
Main entry point untuk lease lock.

Commands:
  node          jalankan LeaseStoreNode
  create-table  provision table untuk configured store
  status NAME   tampilkan lease record
  run NAME --at-most S [--at-least S] -- COMMAND...
                jalankan command di bawah lock
"""

import argparse
import asyncio
import logging
import sys

from leaselock.core.configuration import LockConfiguration
from leaselock.core.exceptions import LeaseLockError
from leaselock.core.lease_lock import LeaseLock
from leaselock.core.records import to_iso_string
from leaselock.nodes.lease_node import LeaseStoreNode
from leaselock.stores import create_store
from leaselock.utils.config import Config

logger = logging.getLogger('leaselock')


def setup_logging():
    """Setup logging configuration"""
    handlers = [logging.StreamHandler(sys.stdout)]
    if Config.LOG_FILE:
        handlers.append(logging.FileHandler(Config.LOG_FILE))

    logging.basicConfig(
        level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


async def run_node():
    """Run lease store node sampai di-interrupt"""
    node = LeaseStoreNode(Config.NODE_ID, Config.NODE_HOST, Config.NODE_PORT)
    await node.start()

    print(f"\n{'='*60}")
    print(f"  LEASE STORE NODE {node.node_id} STARTED")
    print(f"  Address: {node.url}")
    print(f"{'='*60}\n")

    try:
        # Keep running
        while True:
            await asyncio.sleep(1)
    finally:
        await node.stop()


async def create_table(backend: str) -> int:
    store = create_store(backend)
    try:
        await store.create_lease_table()
    finally:
        await store.close()
    print(f"Lease table ready ({backend or Config.LEASE_STORE})")
    return 0


async def show_status(backend: str, name: str) -> int:
    store = create_store(backend)
    try:
        record = await store.get(name)
    finally:
        await store.close()

    if record is None:
        print(f"{name}: never locked")
        return 1

    print(f"{name}:")
    print(f"  lockUntil: {to_iso_string(record.lock_until)}")
    if record.locked_at:
        print(f"  lockedAt:  {to_iso_string(record.locked_at)}")
    print(f"  lockedBy:  {record.locked_by}")
    return 0


async def run_locked(backend: str, name: str, at_most: float, at_least: float, command) -> int:
    """Jalankan command hanya jika lock didapat. Skip = exit code 0."""
    store = create_store(backend)
    lock = LeaseLock(store)

    async def task() -> int:
        try:
            process = await asyncio.create_subprocess_exec(*command)
        except OSError as e:
            logger.error(f"Cannot run {command[0]}: {e}")
            return 127
        return await process.wait()

    try:
        result = await lock.execute(LockConfiguration(name, at_most, at_least), task)
    finally:
        await store.close()

    if not result.executed:
        print(f"Skipped: lock '{name}' is held elsewhere")
        return 0
    return result.result


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='leaselock', description='Distributed lease lock')
    parser.add_argument(
        '--store',
        choices=['memory', 'http', 'redis', 'dynamodb'],
        default=None,
        help='Lease store backend (default: LEASE_STORE)'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('node', help='Run a lease store node')
    subparsers.add_parser('create-table', help='Provision the lease table')

    status = subparsers.add_parser('status', help='Show the lease record of a lock')
    status.add_argument('name')

    run = subparsers.add_parser('run', help='Run a command while holding a lock')
    run.add_argument('name')
    run.add_argument('--at-most', type=float, required=True, help='lock_at_most_for in seconds')
    run.add_argument('--at-least', type=float, default=0.0, help='lock_at_least_for in seconds')
    return parser


def parse_args(argv=None) -> argparse.Namespace:
    """
    Parse command line. Semua setelah "--" adalah command untuk `run`.
    """
    argv = list(sys.argv[1:] if argv is None else argv)
    command = []
    if '--' in argv:
        split = argv.index('--')
        argv, command = argv[:split], argv[split + 1:]

    parser = build_parser()
    args = parser.parse_args(argv)
    args.cmd = command
    if args.command == 'run' and not command:
        parser.error('run needs a command after --')
    return args


def main(argv=None):
    """Main entry point"""
    args = parse_args(argv)

    # Setup logging
    setup_logging()

    try:
        if args.command == 'node':
            Config.display()
            asyncio.run(run_node())
            code = 0
        elif args.command == 'create-table':
            code = asyncio.run(create_table(args.store))
        elif args.command == 'status':
            code = asyncio.run(show_status(args.store, args.name))
        else:
            code = asyncio.run(run_locked(args.store, args.name, args.at_most, args.at_least, args.cmd))
    except KeyboardInterrupt:
        print("\nExiting...")
        code = 0
    except (LeaseLockError, ValueError) as e:
        logger.error(f"Error: {e}")
        code = 1

    sys.exit(code)


if __name__ == "__main__":
    main()
