#!/usr/bin/env python3
"""
Fleetguard - role-based authorization and audit redaction for fleet operations.
Command-line entry point for permission checks, redaction dry-runs and the API server.
"""

import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser

# Configure logging
logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
)

#
# NOTE: Keep fleetguard imports lazy (inside functions) so `--serve` does not pay for
# modules it never uses and `--help` works without the policy catalogs.
#


def format_timestamp_for_display(timestamp_str: Optional[str]) -> str:
    """Format ISO timestamp to compact display format (YYYY-MM-DD HH:MMZ)."""
    if not timestamp_str:
        return "N/A"
    try:
        dt = date_parser.isoparse(timestamp_str)
        return dt.strftime("%Y-%m-%d %H:%MZ")
    except (ValueError, TypeError, AttributeError):
        return timestamp_str[:16]


def _split_roles(raw: str) -> List[str]:
    return [p.strip() for p in (raw or "").split(",") if p.strip()]


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=False))


def check_permission(roles: str, module: str, action: str, context: Optional[Dict[str, Any]] = None) -> bool:
    from fleetguard.authz.context import PermissionContext
    from fleetguard.authz.service import AuthorizationService

    ctx = PermissionContext.from_dict(context) if context else None
    allowed = AuthorizationService().has_permission(_split_roles(roles), module, action, ctx)
    _print_json({"roles": _split_roles(roles), "module": module, "action": action, "allowed": allowed})
    return allowed


def show_effective(roles: str) -> None:
    from fleetguard.authz.service import AuthorizationService

    svc = AuthorizationService()
    perms = svc.effective_permissions(_split_roles(roles))
    highest = svc.highest_role(_split_roles(roles))
    _print_json(
        {
            "roles": _split_roles(roles),
            "highest_role": highest.value if highest else "none",
            "permissions": {m: sorted(a) for m, a in sorted(perms.items())},
        }
    )


def redact_file(role: str, path: Optional[str]) -> None:
    from fleetguard.authz.service import AuthorizationService

    if path:
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
    else:
        payload = json.load(sys.stdin)
    _print_json(AuthorizationService().redact(payload, role))


def list_sessions(company_id: Optional[str] = None, vessel_id: Optional[str] = None) -> None:
    from fleetguard.auth.manager import get_session_manager

    sessions = get_session_manager().list_sessions(company_id=company_id, vessel_id=vessel_id)
    if not sessions:
        print("No audit sessions.")
        return
    print(f"{'ID':<38} {'VESSEL':<14} {'PARTY':<10} {'START':<18} {'END':<18} ACTIVE")
    for s in sessions:
        d = s.to_public_dict()
        print(
            f"{d['id']:<38} {d['vessel_id']:<14} {d['audit_party']:<10} "
            f"{format_timestamp_for_display(d['start']):<18} {format_timestamp_for_display(d['end']):<18} "
            f"{'yes' if d['active'] else 'no'}"
        )


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Fleetguard authorization and audit-redaction engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Can a captain update vessel details on another vessel?
  python main.py --check captain vessels update --vessel v1 --target-vessel v2

  # What can a chief engineer do?
  python main.py --effective chief_engineer

  # Redact a payload as a flag-state auditor would see it
  python main.py --redact auditor_flag --file payload.json

  # Run the HTTP API
  python main.py --serve --port 8080
        """,
    )

    parser.add_argument(
        "--check", nargs=3, metavar=("ROLES", "MODULE", "ACTION"), help="Check a permission (ROLES is comma-separated)"
    )
    parser.add_argument("--user-id", help="Acting user id (context for --check)")
    parser.add_argument("--target-user-id", help="Target user id (context for --check)")
    parser.add_argument("--vessel", help="Acting user's vessel id (context for --check, filter for --list-sessions)")
    parser.add_argument("--target-vessel", help="Target vessel id (context for --check)")
    parser.add_argument("--department", help="Acting user's department (context for --check)")
    parser.add_argument("--target-department", help="Target department (context for --check)")
    parser.add_argument("--self", dest="is_self", action="store_true", help="Target is the acting user")

    parser.add_argument("--effective", metavar="ROLES", help="Show effective permissions for comma-separated roles")
    parser.add_argument("--redact", metavar="ROLE", help="Redact a JSON payload for ROLE")
    parser.add_argument("--file", help="JSON payload for --redact (default: stdin)")
    parser.add_argument("--map-legacy", metavar="NAME", help="Map a legacy role name onto the current catalog")

    parser.add_argument("--list-sessions", action="store_true", help="List audit sessions from the configured store")
    parser.add_argument("--company", help="Company id filter for --list-sessions")

    parser.add_argument("--serve", action="store_true", help="Run the HTTP API server")
    parser.add_argument("--host", default="0.0.0.0", help="API server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="API server listen port (default: 8080)")
    parser.add_argument("--migrate", action="store_true", help="Apply pending audit-session DB migrations")

    args = parser.parse_args(argv)

    try:
        if args.serve:
            from fleetguard.api.server import run as run_server

            run_server(host=args.host, port=args.port)
            return 0

        if args.migrate:
            from fleetguard.auth.migrate import migrate_now

            print(migrate_now())
            return 0

        if args.check:
            roles, module, action = args.check
            context = {
                "user_id": args.user_id,
                "target_user_id": args.target_user_id,
                "vessel_id": args.vessel,
                "target_vessel_id": args.target_vessel,
                "department": args.department,
                "target_department": args.target_department,
                "is_self": args.is_self,
            }
            has_context = any(v for v in context.values())
            return 0 if check_permission(roles, module, action, context if has_context else None) else 1

        if args.effective:
            show_effective(args.effective)
            return 0

        if args.redact:
            redact_file(args.redact, args.file)
            return 0

        if args.map_legacy:
            from fleetguard.authz.roles import map_legacy_role

            print(map_legacy_role(args.map_legacy).value)
            return 0

        if args.list_sessions:
            list_sessions(company_id=args.company, vessel_id=args.vessel)
            return 0

        # No arguments provided
        parser.print_help()
        return 0

    except Exception as e:
        from fleetguard.authz.errors import InvalidArgumentError

        print(f"Error: {e}", file=sys.stderr)
        # Bad roles/modules/actions are usage errors; anything else is a crash.
        if isinstance(e, InvalidArgumentError):
            return 2
        raise


if __name__ == "__main__":
    raise SystemExit(main())
