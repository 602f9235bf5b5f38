"""Command line interface for the Trinity planner."""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from .config import load_config
from .errors import ConfigError, InvalidChain, InvalidSecurityLevel
from .logging_setup import setup_logging
from .models import OperationKind, decimal_str
from .planner import VaultDeploymentPlanner, graceful_shutdown
from .role_assigner import TrinityRoleAssigner


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="trinity-planner")
    parser.add_argument("--config", help="Path to trinity_config.yaml")
    parser.add_argument("--log-level", help="Override log level")
    parser.add_argument("--offline", action="store_true", help="Static prices and gas, no network")
    subparsers = parser.add_subparsers(dest="command", required=True)

    compare_parser = subparsers.add_parser("compare", help="Compare fees on all chains")
    compare_parser.add_argument("--operation", default=OperationKind.VAULT_CREATION)
    compare_parser.add_argument("--json", action="store_true")
    compare_parser.set_defaults(func=_compare)

    estimate_parser = subparsers.add_parser("estimate", help="Estimate one chain's fee")
    estimate_parser.add_argument("chain")
    estimate_parser.add_argument("--operation", default=OperationKind.VAULT_CREATION)
    estimate_parser.set_defaults(func=_estimate)

    plan_parser = subparsers.add_parser("plan", help="Build a vault deployment plan")
    plan_parser.add_argument("primary_chain")
    plan_parser.add_argument("--security-level", type=int, default=3)
    plan_parser.add_argument("--operation", default=OperationKind.VAULT_CREATION)
    plan_parser.add_argument("--vault-type")
    plan_parser.add_argument("--asset-type")
    plan_parser.add_argument("--asset-amount")
    plan_parser.add_argument("--timeout", type=float)
    plan_parser.set_defaults(func=_plan)

    roles_parser = subparsers.add_parser("roles", help="Show role assignment for a primary chain")
    roles_parser.add_argument("primary_chain")
    roles_parser.add_argument("--security-level", type=int, default=3)
    roles_parser.set_defaults(func=_roles)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.set_defaults(func=_serve)

    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
        logging_settings = config.logging
        setup_logging(args.log_level or logging_settings.get('level', 'INFO'), logging_settings.get('file'))
        return args.func(args, config)
    except (InvalidChain, InvalidSecurityLevel, ConfigError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2


def _run(config, offline: bool, work):
    async def runner():
        planner = VaultDeploymentPlanner.from_config(config, offline=offline)
        try:
            return await work(planner)
        finally:
            await graceful_shutdown(planner)

    return asyncio.run(runner())


def _compare(args: argparse.Namespace, config) -> int:
    async def work(planner):
        comparison = await planner.compare(args.operation)
        return comparison, planner.comparator.ranked(comparison)

    comparison, ranked = _run(config, args.offline, work)

    if args.json:
        print(json.dumps(comparison.to_dict(), indent=2))
        return 0

    print(f"\n{args.operation} fees:")
    for estimate in ranked:
        marker = "*" if estimate.chain == comparison.recommended_chain else " "
        print(f" {marker} {estimate.chain:<10} ${decimal_str(estimate.fee_usd):<12} "
              f"{decimal_str(estimate.fee_native)} {estimate.metadata.get('symbol', '')}"
              f"  ({estimate.congestion.value}, ~{estimate.estimated_confirm_seconds}s, {estimate.source.value})")
    savings = comparison.savings
    print(f"\nCheapest: {comparison.recommended_chain}, saves "
          f"${decimal_str(savings.amount_usd_vs_most_expensive)} ({decimal_str(savings.percent)}%)")
    return 0


def _estimate(args: argparse.Namespace, config) -> int:
    config.validate_chain(args.chain)

    async def work(planner):
        return await planner.estimator.estimate(args.chain, args.operation)

    estimate = _run(config, args.offline, work)
    print(json.dumps(estimate.to_dict(), indent=2))
    return 0


def _plan(args: argparse.Namespace, config) -> int:
    async def work(planner):
        return await planner.plan(
            args.primary_chain,
            args.operation,
            args.security_level,
            vault_type=args.vault_type,
            asset_type=args.asset_type,
            asset_amount=args.asset_amount,
            timeout=args.timeout,
        )

    plan = _run(config, args.offline, work)
    print(json.dumps(plan.to_dict(), indent=2))
    return 0


def _roles(args: argparse.Namespace, config) -> int:
    assigner = TrinityRoleAssigner(config)
    assignment = assigner.assign(args.primary_chain)
    requirements = assigner.requires_verification(args.primary_chain, args.security_level)

    print(assignment.description)
    for chain, text in assignment.responsibilities.items():
        print(f"  {chain:<10} {text}")
    print(f"Deployment order: {' -> '.join(assigner.deployment_priority(assignment.roles))}")
    required = [chain for chain, needed in requirements.items() if needed]
    print(f"Security level {args.security_level}: verifiers required: {', '.join(required) or 'none'}")
    return 0


def _serve(args: argparse.Namespace, config) -> int:
    import uvicorn

    from .api import create_app

    planner = VaultDeploymentPlanner.from_config(config, offline=args.offline)
    uvicorn.run(create_app(planner=planner, config=config), host=args.host, port=args.port)
    return 0
