"""
CLI for tracker-offline-sync

Command-line interface for pulling tracker data into a local store and
inspecting what is stored.

Usage:
    offline-sync pull DiszpKrYNg8 --url https://server/api -u admin -p district
    offline-sync status                      # Row counts per table
    offline-sync tree ImspTQPwCqd            # Org unit subtree
    offline-sync unsynced                    # Records waiting for upload
"""

import argparse
import logging
import signal
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

DEFAULT_DB = "./offline.db"


def cmd_pull(args):
    """Pull metadata and tracker data for the given org units."""
    from tracker_offline_sync.clients.api import ApiClient
    from tracker_offline_sync.config import SyncConfig
    from tracker_offline_sync.store.local import LocalStore
    from tracker_offline_sync.sync.cancel import CancelToken
    from tracker_offline_sync.sync.coordinator import SyncCoordinator

    auth = (args.username, args.password) if args.username else None
    config = SyncConfig(
        page_size=args.page_size,
        skip_populated_metadata=args.skip_metadata,
    )
    cancel = CancelToken()
    last_printed: dict[str, int] = {}

    def progress(event):
        step = int(event.percent // 10)
        if last_printed.get(event.phase_id) != step:
            last_printed[event.phase_id] = step
            print(f"  [{event.phase_id}] {event.percent:.1f}%")

    with ApiClient(args.url, auth=auth, timeout=args.timeout) as client, LocalStore(args.db) as store:
        coordinator = SyncCoordinator(client, store, config)
        coordinator.progress.subscribe(progress)

        # First Ctrl+C stops after the current unit, a second one aborts
        previous_handler = signal.getsignal(signal.SIGINT)

        def request_cancel(signum, frame):
            print("\nCancelling after the current unit (Ctrl+C again to abort)")
            cancel.cancel()
            signal.signal(signal.SIGINT, previous_handler)

        signal.signal(signal.SIGINT, request_cancel)
        try:
            report = coordinator.run(args.units, programs=args.program or None, cancel=cancel)
        finally:
            signal.signal(signal.SIGINT, previous_handler)

    # Print summary
    print(f"\n{'=' * 50}")
    print(f"PULL {report.status.value.upper()}")
    print(f"{'=' * 50}")
    print(f"Scope units:     {', '.join(args.units)}")
    for phase in report.phases:
        print(
            f"  {phase.phase_id:<16} {phase.status.value:<10} rows={phase.rows_written} "
            f"units_skipped={phase.units_skipped} records_skipped={phase.records_skipped}"
        )
    print(f"Units skipped:   {report.units_skipped}")
    print(f"Records skipped: {report.records_skipped}")

    if report.error:
        print(f"Error: {report.error}")
    if not report.succeeded:
        sys.exit(1)


def cmd_status(args):
    """Show row counts per table and pending offline changes."""
    from tracker_offline_sync.store.local import LocalStore
    from tracker_offline_sync.sync.offline import OfflineChangeTracker

    with LocalStore(args.db) as store:
        counts = {name: store.count(name) for name in sorted(store.tables)}
        unsynced = OfflineChangeTracker(store).count_unsynced()

    print(f"\n{'=' * 50}")
    print(f"STATUS: {args.db}")
    print(f"{'=' * 50}")
    for name, count in counts.items():
        print(f"  {name:<16} {count}")

    pending = sum(unsynced.values())
    print(f"\nUnsynced rows:   {pending}")


def cmd_tree(args):
    """Print an org unit and its descendants."""
    from tracker_offline_sync.store.local import LocalStore
    from tracker_offline_sync.sync.hierarchy import HierarchyBuilder

    with LocalStore(args.db) as store:
        builder = HierarchyBuilder(store)
        if args.unit:
            unit = builder.get_unit_with_children(args.unit)
            if unit is None:
                print(f"Unknown org unit: {args.unit}")
                sys.exit(1)
            roots = [unit]
        elif args.user:
            roots = builder.get_user_hierarchy()
        else:
            roots = builder.get_roots()

        for root in roots:
            units = [root] + (root.children if args.unit else builder.get_children(root))
            for unit in units:
                if args.max_depth and unit.level - root.level > args.max_depth:
                    continue
                indent = "  " * (unit.level - root.level)
                marker = " *" if unit.within_user_hierarchy else ""
                print(f"{indent}{unit.display_name or unit.id} ({unit.id}){marker}")


def cmd_unsynced(args):
    """List records created offline that have not been pushed yet."""
    from tracker_offline_sync.store.local import LocalStore
    from tracker_offline_sync.sync.offline import NATURAL_KEYS, OfflineChangeTracker

    with LocalStore(args.db) as store:
        unsynced = OfflineChangeTracker(store).list_unsynced()

    total = 0
    for table, rows in unsynced.items():
        _, key_extractor = NATURAL_KEYS[table]
        keys = list(dict.fromkeys(key_extractor(row) for row in rows))
        total += len(keys)
        if keys:
            print(f"\n{table} ({len(keys)} records, {len(rows)} rows):")
            for key in keys:
                print(f"  {key}")

    if total == 0:
        print("No unsynced records")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="offline-sync",
        description="Tracker Offline Sync - mirror tracker data into a local store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Pull everything for two org units
  offline-sync pull DiszpKrYNg8 O6uvpzGd5pu --url https://server/api -u admin -p district

  # Pull one program only, keeping already stored metadata
  offline-sync pull DiszpKrYNg8 --url https://server/api --program IpHINAT79UW --skip-metadata

  # Inspect the store
  offline-sync status
  offline-sync tree ImspTQPwCqd --max-depth 2
  offline-sync unsynced

Use 'offline-sync <command> --help' for more information on each command.
        """,
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument("--db", default=DEFAULT_DB, help=f"Local store path (default: {DEFAULT_DB})")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # pull command
    pull_parser = subparsers.add_parser("pull", help="Pull metadata and tracker data")
    pull_parser.add_argument("units", nargs="+", help="Scope org unit ids")
    pull_parser.add_argument("--url", required=True, help="API root (e.g., https://server/api)")
    pull_parser.add_argument("--username", "-u", help="Basic auth username")
    pull_parser.add_argument("--password", "-p", default="", help="Basic auth password")
    pull_parser.add_argument(
        "--program",
        action="append",
        help="Program id to pull (repeatable; default: every tracker program)",
    )
    pull_parser.add_argument(
        "--page-size", type=int, default=50, help="Records per page (default: 50)"
    )
    pull_parser.add_argument(
        "--timeout", type=float, default=30, help="Request timeout in seconds (default: 30)"
    )
    pull_parser.add_argument(
        "--skip-metadata",
        action="store_true",
        help="Skip metadata tables that already hold rows",
    )
    pull_parser.set_defaults(func=cmd_pull)

    # status command
    status_parser = subparsers.add_parser("status", help="Show store contents")
    status_parser.set_defaults(func=cmd_status)

    # tree command
    tree_parser = subparsers.add_parser("tree", help="Show the org unit hierarchy")
    tree_parser.add_argument("unit", nargs="?", help="Root org unit id (default: top level)")
    tree_parser.add_argument(
        "--user", action="store_true", help="Only units within the user's hierarchy"
    )
    tree_parser.add_argument("--max-depth", type=int, help="Levels to show below the root")
    tree_parser.set_defaults(func=cmd_tree)

    # unsynced command
    unsynced_parser = subparsers.add_parser("unsynced", help="List records waiting for upload")
    unsynced_parser.set_defaults(func=cmd_unsynced)

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except KeyboardInterrupt:
        print("\nInterrupted")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Error: {e}")
        if args.verbose:
            raise
        sys.exit(1)


if __name__ == "__main__":
    main()
