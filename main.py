from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

from intune_commander.audit import JsonAuditLogger
from intune_commander.config import AuthMethod, CommanderConfig
from intune_commander.groups import infer_group_type
from intune_commander.models import DirectoryGroup
from intune_commander.tenant_manager import TenantExecutionContext, TenantManager

OPERATIONS = [
    "list-dynamic-groups",
    "list-assigned-groups",
    "member-counts",
    "list-assignment-filters",
    "list-conditional-access-policies",
    "list-policy-sets",
]


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Intune tenant directory reader")
    parser.add_argument("--config", required=True, help="Path to tenant profile YAML")
    parser.add_argument("--profile-id", required=True, help="Profile ID to target")
    parser.add_argument("--operation", required=True, choices=OPERATIONS, help="Operation to run")
    parser.add_argument("--group-id", help="Group ID for member-counts")
    parser.add_argument(
        "--auth-method",
        choices=[method.value for method in AuthMethod],
        help="Override the profile's authentication method",
    )
    return parser.parse_args()


def print_device_code(verification_uri: str, user_code: str, expires_on: datetime) -> None:
    print(
        f"To sign in, open {verification_uri} and enter the code {user_code} "
        f"(expires {expires_on:%H:%M:%S}).",
        file=sys.stderr,
    )


def group_rows(groups: List[DirectoryGroup]) -> List[Dict[str, Any]]:
    rows = []
    for group in groups:
        row = group.model_dump(mode="json", by_alias=True)
        row["groupType"] = infer_group_type(group).value
        rows.append(row)
    return rows


async def run(args: argparse.Namespace) -> Any:
    config = CommanderConfig.load(Path(args.config))
    manager = TenantManager(config, audit_logger=JsonAuditLogger())

    async def operation(ctx: TenantExecutionContext) -> Any:
        if args.operation == "list-dynamic-groups":
            return group_rows(await ctx.groups.list_dynamic_groups(ctx.cancel_event))
        if args.operation == "list-assigned-groups":
            return group_rows(await ctx.groups.list_assigned_groups(ctx.cancel_event))
        if args.operation == "member-counts":
            counts = await ctx.groups.get_member_counts(args.group_id, ctx.cancel_event)
            return dataclasses.asdict(counts)
        if args.operation == "list-assignment-filters":
            return await ctx.assignment_filters.list_all(ctx.cancel_event)
        if args.operation == "list-conditional-access-policies":
            return await ctx.conditional_access.list_all(ctx.cancel_event)
        if args.operation == "list-policy-sets":
            return await ctx.policy_sets.list_all(ctx.cancel_event)
        raise SystemExit(f"Unsupported operation: {args.operation}")

    return await manager.run_operation(
        profile_id=args.profile_id,
        operation=operation,
        auth_method=AuthMethod(args.auth_method) if args.auth_method else None,
        device_code_prompt=print_device_code,
    )


def main() -> None:
    args = parse_args()
    if args.operation == "member-counts" and not args.group_id:
        raise SystemExit("--group-id is required for member-counts")

    result = asyncio.run(run(args))
    print(json.dumps(result, indent=2))


if __name__ == "__main__":
    main()
