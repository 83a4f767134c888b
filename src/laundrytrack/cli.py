"""Command-line interface for laundrytrack."""

import argparse
import asyncio
import json
import sys

from . import __version__, config
from .errors import LaundryTrackError
from .incidents import open_incidents
from .models import IncidentFilter, OrderState, TrackingRecord
from .order_store import OrderStore
from .synchronizer import Synchronizer
from .tracker import summarize
from .tracking_store import TrackingStore


def get_stores() -> tuple[OrderStore, TrackingStore]:
    """Get the order and tracking stores for the configured data directory."""
    return OrderStore(config.DATA_DIR), TrackingStore(config.DATA_DIR)


def format_record(record: TrackingRecord, verbose: bool = False) -> str:
    """Format a tracking record for display."""
    line = f"#{record.order_number:<10} {record.state.value:<20}"
    if record.shift:
        line += f" shift {record.shift.value}"
    if record.rework.count:
        line += f" rework x{record.rework.count}"
    pending = open_incidents(record)
    if pending:
        line += f" [{len(pending)} open incident(s)]"
    if verbose:
        line += f"\n  ID: {record.id}\n  Updated: {record.updated_at}"
    return line


def cmd_list(args: argparse.Namespace) -> int:
    """List tracked orders."""
    try:
        _, tracking = get_stores()
        states = [OrderState(args.state)] if args.state else None
        incidents = IncidentFilter(args.incidents) if args.incidents else None
        records = tracking.query(
            active=None if args.all else True, states=states, incidents=incidents
        )

        if not records:
            print("No orders found.")
            return 0

        if args.json:
            print(json.dumps([r.to_dict() for r in records], indent=2))
        else:
            print(f"Orders ({len(records)}):")
            print()
            for record in records:
                print(format_record(record, verbose=args.verbose))

        return 0

    except LaundryTrackError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_show(args: argparse.Namespace) -> int:
    """Show one order with its full history."""
    try:
        orders, tracking = get_stores()
        order = orders.find_by_order_number(args.order_number)
        record = tracking.get(order.id)

        if args.json:
            print(json.dumps({"order": order.to_dict(), "tracking": record.to_dict()}, indent=2))
            return 0

        print(f"Order #{order.order_number}: {order.customer_name} ({order.phone})")
        print(f"  Delivery: {order.delivery_type.value}")
        if order.address:
            print(f"  Address: {order.address}")
        print(f"  State: {record.state.value}")
        print()
        print("History:")
        for entry in record.history:
            shift = f" [shift {entry.shift.value}]" if entry.shift else ""
            print(f"  {entry.changed_at}  {entry.state.value:<20} {entry.actor_name}{shift}")
            if entry.comment:
                print(f"      {entry.comment}")

        if record.assignments:
            print()
            print("Assignments:")
            for state, assignment in record.assignments.items():
                names = ", ".join(w.name for w in assignment.workers)
                print(f"  {state.value:<10} shift {assignment.shift.value}: {names}")

        if record.dispatch:
            d = record.dispatch
            print()
            print(f"Dispatch: {d.state.value}")
            if d.driver_name:
                print(f"  Driver: {d.driver_name} ({d.vehicle}, {d.plate})")
            if d.receiver_name:
                print(f"  Received by: {d.receiver_name}")
            if d.incident:
                print(f"  Incident: {d.incident.category.value} - {d.incident.description}")

        if record.incidents:
            print()
            print("Incidents:")
            for incident in record.incidents:
                status = "resolved" if incident.resolved else "open"
                print(
                    f"  {incident.id} [{status}] {incident.category.value} "
                    f"at {incident.state.value}: {incident.description}"
                )

        return 0

    except LaundryTrackError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_summary(args: argparse.Namespace) -> int:
    """Print the admin board counters."""
    _, tracking = get_stores()
    summary = summarize(tracking.list_records())

    if args.json:
        print(json.dumps(summary.to_dict(), indent=2))
        return 0

    print(f"Total orders:        {summary.total}")
    print(f"Active:              {summary.active}")
    print(f"In process:          {summary.in_process}")
    print(f"With open incidents: {summary.with_open_incidents}")
    if summary.by_state:
        print()
        for state in OrderState:
            if state in summary.by_state:
                print(f"  {state.value:<20} {summary.by_state[state]}")
    return 0


def cmd_sync(args: argparse.Namespace) -> int:
    """Run the synchronizer in the foreground until interrupted."""
    orders, tracking = get_stores()
    synchronizer = Synchronizer(orders, tracking, poll_interval=args.interval)

    print(f"Synchronizing orders in {config.DATA_DIR} (Ctrl+C to stop)...")
    try:
        asyncio.run(synchronizer.run())
    except KeyboardInterrupt:
        print("Stopped.")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    try:
        import uvicorn

        print("Starting laundrytrack API server...")
        print(f"Data directory: {config.DATA_DIR}")
        print(f"API docs: http://{args.host}:{args.port}/docs")
        print()

        # When reload is enabled, uvicorn requires the app as an import string
        app_target = "laundrytrack.api:app" if args.reload else None
        if app_target is None:
            from .api import app
            app_target = app

        uvicorn.run(
            app_target,
            host=args.host,
            port=args.port,
            reload=args.reload,
            workers=1,  # one synchronizer per data directory
        )
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="laundrytrack",
        description="Track laundry orders from reception to delivery.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # list
    list_parser = subparsers.add_parser("list", help="List tracked orders")
    list_parser.add_argument(
        "--state", "-s", choices=[s.value for s in OrderState], help="Only orders in this state"
    )
    list_parser.add_argument(
        "--incidents", "-i", choices=[f.value for f in IncidentFilter],
        help="Only orders with open incidents, or with none reported"
    )
    list_parser.add_argument(
        "--all", "-a", action="store_true", help="Include delivered orders"
    )
    list_parser.add_argument(
        "--json", action="store_true", help="Output as JSON"
    )
    list_parser.add_argument(
        "--verbose", "-v", action="store_true", help="Show record IDs and timestamps"
    )

    # show
    show_parser = subparsers.add_parser("show", help="Show an order and its history")
    show_parser.add_argument("order_number", help="Order number")
    show_parser.add_argument(
        "--json", action="store_true", help="Output as JSON"
    )

    # summary
    summary_parser = subparsers.add_parser("summary", help="Show order counters")
    summary_parser.add_argument(
        "--json", action="store_true", help="Output as JSON"
    )

    # sync
    sync_parser = subparsers.add_parser("sync", help="Run the order synchronizer")
    sync_parser.add_argument(
        "--interval", type=float, default=config.POLL_SECONDS,
        help=f"Polling interval in seconds (default: {config.POLL_SECONDS})"
    )

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument(
        "--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)"
    )
    serve_parser.add_argument(
        "--port", type=int, default=8000, help="Port to bind to (default: 8000)"
    )
    serve_parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )

    return parser


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 0

    commands = {
        "list": cmd_list,
        "show": cmd_show,
        "summary": cmd_summary,
        "sync": cmd_sync,
        "serve": cmd_serve,
    }

    cmd_func = commands.get(args.command)
    if cmd_func:
        return cmd_func(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
