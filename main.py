#!/usr/bin/env python3
"""
project-allocation: supervisor allocation for student projects, LLM-advised or rule-based.

Usage:
    python main.py allocate [--provider P] [--dry-run]  # LLM allocation for all submitted projects
    python main.py allocate-project ID                  # Rule-based allocation for one project
    python main.py reallocate ALLOCATION_ID SUPERVISOR_ID
    python main.py approve ID                           # Approve a pending allocation
    python main.py reject ID --reason "..."             # Reject an allocation
    python main.py allocations [--status S]             # List allocations
    python main.py stats                                # Allocation statistics
    python main.py providers                            # LLM provider configuration status
    python main.py test-connection PROVIDER             # Round-trip synthetic data through a provider
    python main.py serve                                # Start the admin API server
"""

import argparse
import logging
import sys

from allocation import (
    AllocationEngine, AllocationError, create_adapter, run_connection_check,
)
from config import load_config
from delivery import (
    deliver_allocations, deliver_provider_status, deliver_result, deliver_statistics,
)
from llm import LLMConfigError, provider_status, validate_config
from llm.factory import resolve_provider_name
from models import AllocationStatus
from storage import Storage


def setup_logging(verbose: bool = False):
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def cmd_allocate(config, storage, provider: str | None, dry_run: bool) -> int:
    """LLM allocation run over every submitted, unallocated project."""
    name = resolve_provider_name(config, provider)
    if not validate_config(name, config.provider_settings(name)):
        print(f"Error: provider '{name}' is not properly configured (missing api key).", file=sys.stderr)
        return 1

    engine = AllocationEngine(storage, config, adapter=create_adapter(config, name))
    deliver_statistics(engine.get_statistics(), title="BEFORE ALLOCATION")

    candidates = storage.get_unallocated_submitted_projects()
    print(f"Found {len(candidates)} submitted projects awaiting allocation (provider: {name})")
    if dry_run:
        print("DRY RUN: no provider call, no allocations created.")
        return 0

    result = engine.generate_allocations()
    deliver_result(result)
    deliver_statistics(engine.get_statistics(), title="AFTER ALLOCATION")
    return 0 if result.allocations else 1


def cmd_allocate_project(config, storage, project_id: int) -> int:
    allocation = AllocationEngine(storage, config).allocate_project(project_id)
    deliver_allocations([allocation])
    return 0


def cmd_reallocate(config, storage, allocation_id: int, supervisor_id: int) -> int:
    allocation = AllocationEngine(storage, config).reallocate_project(allocation_id, supervisor_id)
    deliver_allocations([allocation])
    return 0


def cmd_approve(config, storage, allocation_id: int) -> int:
    allocation = AllocationEngine(storage, config).approve_allocation(allocation_id)
    deliver_allocations([allocation])
    return 0


def cmd_reject(config, storage, allocation_id: int, reason: str) -> int:
    allocation = AllocationEngine(storage, config).reject_allocation(allocation_id, reason)
    deliver_allocations([allocation])
    return 0


def cmd_allocations(config, storage, status: str | None) -> int:
    allocations = AllocationEngine(storage, config).list_allocations(
        AllocationStatus(status) if status else None
    )
    deliver_allocations(allocations)
    return 0


def cmd_stats(config, storage) -> int:
    deliver_statistics(AllocationEngine(storage, config).get_statistics())
    return 0


def cmd_providers(config) -> int:
    deliver_provider_status(provider_status(config))
    return 0


def cmd_test_connection(config, provider: str) -> int:
    result = run_connection_check(create_adapter(config, provider))
    print(result["message"])
    return 0 if result["success"] else 1


def cmd_serve(config, args):
    """Start the admin API server."""
    from api.server import create_app

    app = create_app(db_path=config.db_path, config=config)
    print(f"Starting admin API at http://{args.host}:{args.port} (db: {config.db_path})")
    app.run(host=args.host, port=args.port, debug=args.verbose)


def cli():
    parser = argparse.ArgumentParser(
        prog="allocation",
        description="Supervisor allocation for student projects",
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")

    sub = parser.add_subparsers(dest="command", help="Command to run")

    allocate_parser = sub.add_parser(
        "allocate", parents=[common],
        help="LLM allocation for all submitted, unallocated projects",
    )
    allocate_parser.add_argument(
        "--provider", choices=["gemini", "openai", "anthropic"], default=None,
        help="LLM provider (default: LLM_DEFAULT_PROVIDER)",
    )
    allocate_parser.add_argument(
        "--dry-run", action="store_true",
        help="Check configuration and candidates without calling the provider",
    )

    project_parser = sub.add_parser("allocate-project", parents=[common], help="Rule-based allocation for one project")
    project_parser.add_argument("project_id", type=int)

    reallocate_parser = sub.add_parser("reallocate", parents=[common], help="Move an allocation to another supervisor")
    reallocate_parser.add_argument("allocation_id", type=int)
    reallocate_parser.add_argument("supervisor_id", type=int)

    approve_parser = sub.add_parser("approve", parents=[common], help="Approve an allocation")
    approve_parser.add_argument("allocation_id", type=int)

    reject_parser = sub.add_parser("reject", parents=[common], help="Reject an allocation")
    reject_parser.add_argument("allocation_id", type=int)
    reject_parser.add_argument("--reason", required=True, help="Rejection reason")

    list_parser = sub.add_parser("allocations", parents=[common], help="List allocations")
    list_parser.add_argument("--status", choices=[s.value for s in AllocationStatus], default=None)

    sub.add_parser("stats", parents=[common], help="Show allocation statistics")
    sub.add_parser("providers", parents=[common], help="Show LLM provider configuration status")

    test_parser = sub.add_parser("test-connection", parents=[common], help="Test an LLM provider")
    test_parser.add_argument("provider", choices=["gemini", "openai", "anthropic"])

    serve_parser = sub.add_parser("serve", parents=[common], help="Start the admin API server")
    serve_parser.add_argument("--port", type=int, default=5002, help="Port (default 5002)")
    serve_parser.add_argument("--host", type=str, default="127.0.0.1", help="Host (default 127.0.0.1)")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.verbose)
    config = load_config()

    try:
        # These don't touch the database
        match args.command:
            case "serve":
                cmd_serve(config, args)
                return
            case "providers":
                sys.exit(cmd_providers(config))
            case "test-connection":
                sys.exit(cmd_test_connection(config, args.provider))

        storage = Storage(config.db_path)
        try:
            match args.command:
                case "allocate":
                    code = cmd_allocate(config, storage, args.provider, args.dry_run)
                case "allocate-project":
                    code = cmd_allocate_project(config, storage, args.project_id)
                case "reallocate":
                    code = cmd_reallocate(config, storage, args.allocation_id, args.supervisor_id)
                case "approve":
                    code = cmd_approve(config, storage, args.allocation_id)
                case "reject":
                    code = cmd_reject(config, storage, args.allocation_id, args.reason)
                case "allocations":
                    code = cmd_allocations(config, storage, args.status)
                case "stats":
                    code = cmd_stats(config, storage)
                case _:
                    parser.print_help()
                    code = 1
        finally:
            storage.close()
    except LLMConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    except AllocationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    cli()
