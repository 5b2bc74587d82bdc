"""
Command-line interface for BI Portal access operations.

Lets operators validate configuration, prepare the database and inspect what
the access engine decides for a given user without going through the API.
"""

import argparse
import asyncio
import json
import sys
from typing import Optional

from bi_portal.access.engine import AccessEngine
from bi_portal.access.feature_catalog import DEFAULT_PLANS
from bi_portal.access.models import FeatureAccess, GuardState, Role, RouteRequirements
from bi_portal.access.presentation import build_blocked_screen
from bi_portal.auth.jwt_manager import create_access_token
from bi_portal.cache.redis_cache import get_role_cache, reset_role_cache
from bi_portal.database.connection import get_db_context, get_session_factory, init_db
from bi_portal.database.repositories import Repositories, seed_plans
from bi_portal.utils.config import get_config, validate_configuration
from bi_portal.utils.exceptions import FetchFailure
from bi_portal.utils.logger import bind_log_context, get_logger, setup_logging


cli_logger = get_logger(__name__)


class PortalCLI:
    """Command-line interface for access engine operations."""

    def __init__(self):
        self.config = None
        self.repositories: Optional[Repositories] = None
        self.engine: Optional[AccessEngine] = None

    def _init_services(self):
        """Initialize services (lazy loading)."""
        if not self.config:
            self.config = get_config()
            self.repositories = Repositories(get_session_factory())
            self.engine = AccessEngine(
                role_store=self.repositories.roles,
                subscription_store=self.repositories.subscriptions,
                catalog_store=self.repositories.plans,
                usage_store=self.repositories.usage,
                role_cache=get_role_cache(),
                config=self.config.access,
            )
            cli_logger.info("Services initialized successfully")

    async def cmd_config(self, args) -> int:
        """Handle configuration commands."""
        try:
            if args.config_action == "validate":
                cli_logger.info("Validating configuration...")
                validation_result = validate_configuration()

                if validation_result["valid"]:
                    print("✅ Configuration is valid")
                    print(f"📊 Summary: {json.dumps(validation_result['summary'], indent=2)}")
                    return 0
                else:
                    print(f"❌ Configuration validation failed: {validation_result['error']}")
                    return 1

            elif args.config_action == "show":
                config = get_config()
                print("📋 Current configuration:")

                config_summary = {
                    "database": {
                        "url": config.database.url.split("@")[-1],
                        "pool_size": config.database.pool_size,
                    },
                    "auth": {
                        "algorithm": config.auth.algorithm,
                        "access_token_expire_minutes": config.auth.access_token_expire_minutes,
                        "has_secret_key": bool(config.auth.secret_key),
                    },
                    "access": config.access.model_dump(),
                    "application": {
                        "log_level": config.app.log_level,
                        "log_dir": config.app.log_dir,
                        "debug_mode": config.app.debug_mode,
                        "environment": config.app.environment,
                        "redis_enabled": bool(config.redis_url),
                        "sentry_enabled": bool(config.app.sentry_dsn),
                    },
                }

                print(json.dumps(config_summary, indent=2))
                return 0

        except Exception as e:
            cli_logger.error(f"Config command failed: {e}")
            print(f"❌ Configuration operation failed: {e}")
            return 1

    async def cmd_db(self, args) -> int:
        """Handle database commands."""
        try:
            if args.db_action == "init":
                init_db()
                print("✅ Database tables created")
                return 0

            elif args.db_action == "seed":
                with get_db_context() as db:
                    created = seed_plans(db, DEFAULT_PLANS)
                print(f"✅ Seeded {created} plan(s)")
                return 0

        except Exception as e:
            cli_logger.error(f"Database command failed: {e}")
            print(f"❌ Database operation failed: {e}")
            return 1

    async def cmd_access(self, args) -> int:
        """Inspect access engine results for one user."""
        try:
            self._init_services()

            session = await self.engine.session_for(self.repositories.identity(args.user_id))
            if session is None:
                print(f"❌ User '{args.user_id}' not found or inactive")
                return 1

            bind_log_context(user_id=session.user.id, session_id=session.session_id)

            try:
                if args.access_action == "snapshot":
                    snapshot = await session.snapshot()
                    print(json.dumps(snapshot.to_dict(), indent=2, ensure_ascii=False))
                    return 0

                elif args.access_action == "decision":
                    requirements = RouteRequirements(
                        require_admin=args.require_admin,
                        require_master_admin=args.require_master_admin,
                        require_subscription=not args.no_subscription,
                    )
                    guard = self.engine.guard(session, requirements)
                    try:
                        decision = await guard.evaluate()
                    finally:
                        await guard.close()

                    result = {
                        "state": decision.state.value,
                        "reason": decision.reason.value if decision.reason else None,
                        "redirect_to": decision.redirect_to,
                    }
                    if decision.state == GuardState.BLOCKED:
                        try:
                            role = await session.role()
                        except FetchFailure:
                            role = Role.VIEWER
                        screen = build_blocked_screen(
                            decision.reason,
                            role,
                            session.peek_snapshot(),
                            plans_route=self.config.access.plans_route,
                            auth_route=self.config.access.auth_route,
                            grace_period_days=self.config.access.grace_period_days,
                            trial_days=self.config.access.default_trial_days,
                        )
                        result["blocked_screen"] = screen.to_dict()

                    print(json.dumps(result, indent=2, ensure_ascii=False))
                    return 0 if decision.state == GuardState.ALLOWED else 2

                elif args.access_action == "features":
                    gate = await session.feature_gate()
                    entitlements = gate.entitlements
                    if entitlements is None:
                        print("❌ Plan entitlements could not be loaded, try again")
                        return 1
                    print(f"📦 Plan: {entitlements.plan_name} ({entitlements.plan_key})")
                    for key in sorted(entitlements.feature_keys):
                        print(f"  ✅ {key}")
                    if args.feature:
                        access = gate.has_feature(args.feature)
                        emoji = "✅" if access == FeatureAccess.GRANTED else "❌"
                        print(f"{emoji} {args.feature}: {access.value}")
                        return 0 if access == FeatureAccess.GRANTED else 2
                    return 0

                elif args.access_action == "limits":
                    checks = await session.limits()
                    print(json.dumps(
                        {kind.value: check.to_dict() for kind, check in checks.items()},
                        indent=2,
                    ))
                    return 0
            finally:
                await self.engine.registry.invalidate(session.session_id)

        except Exception as e:
            cli_logger.error(f"Access command failed: {e}")
            print(f"❌ Access operation failed: {e}")
            return 1

    async def cmd_cache(self, args) -> int:
        """Handle role cache commands."""
        try:
            cache = get_role_cache()
            if cache is None:
                print("⚠️  Role cache disabled (REDIS_URL not set)")
                return 0

            try:
                if args.cache_action == "invalidate":
                    if not args.company_id:
                        print("❌ --company-id is required")
                        return 1
                    deleted = await cache.invalidate_company(args.company_id)
                    print(f"✅ Dropped {deleted} cached role key(s) for company {args.company_id}")
                    return 0

                elif args.cache_action == "ping":
                    if await cache.ping():
                        print("✅ Redis reachable")
                        return 0
                    print("❌ Redis unreachable")
                    return 1
            finally:
                await cache.close()
                reset_role_cache()

        except Exception as e:
            cli_logger.error(f"Cache command failed: {e}")
            print(f"❌ Cache operation failed: {e}")
            return 1

    async def cmd_token(self, args) -> int:
        """Issue a bearer token for a stored user, for local API testing."""
        try:
            self._init_services()

            user = await self.repositories.identity(args.user_id).get_current_user()
            if user is None:
                print(f"❌ User '{args.user_id}' not found or inactive")
                return 1

            print(create_access_token(user.id, user.email, user.company_id))
            return 0

        except Exception as e:
            cli_logger.error(f"Token command failed: {e}")
            print(f"❌ Token operation failed: {e}")
            return 1


def create_parser() -> argparse.ArgumentParser:
    """Create command-line argument parser."""
    parser = argparse.ArgumentParser(
        prog="bi-portal",
        description="BI Portal access control CLI",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Config commands
    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_parser.add_argument(
        "config_action",
        choices=["validate", "show"],
        help="Configuration action to perform"
    )

    # Database commands
    db_parser = subparsers.add_parser("db", help="Database management")
    db_parser.add_argument(
        "db_action",
        choices=["init", "seed"],
        help="Database action to perform"
    )

    # Access commands
    access_parser = subparsers.add_parser("access", help="Inspect access decisions")
    access_parser.add_argument(
        "access_action",
        choices=["snapshot", "decision", "features", "limits"],
        help="Access action to perform"
    )
    access_parser.add_argument("--user-id", required=True, help="User to evaluate")
    access_parser.add_argument("--require-admin", action="store_true", help="Route requires admin")
    access_parser.add_argument("--require-master-admin", action="store_true", help="Route requires master-admin")
    access_parser.add_argument("--no-subscription", action="store_true", help="Route does not require a subscription")
    access_parser.add_argument("--feature", help="Feature key to check (features action)")

    # Cache commands
    cache_parser = subparsers.add_parser("cache", help="Role cache management")
    cache_parser.add_argument(
        "cache_action",
        choices=["invalidate", "ping"],
        help="Cache action to perform"
    )
    cache_parser.add_argument("--company-id", help="Company whose cached roles are dropped (invalidate action)")

    # Token commands
    token_parser = subparsers.add_parser("token", help="Issue an access token")
    token_parser.add_argument("--user-id", required=True, help="User the token is issued for")

    return parser


async def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging()

    if not args.command:
        parser.print_help()
        return 1

    cli = PortalCLI()

    try:
        if args.command == "config":
            return await cli.cmd_config(args)
        elif args.command == "db":
            return await cli.cmd_db(args)
        elif args.command == "access":
            return await cli.cmd_access(args)
        elif args.command == "cache":
            return await cli.cmd_cache(args)
        elif args.command == "token":
            return await cli.cmd_token(args)
        else:
            print(f"❌ Unknown command: {args.command}")
            return 1

    except KeyboardInterrupt:
        print("\n⏹️  Operation cancelled by user")
        return 130


def cli_entry_point():
    """Entry point for console script."""
    try:
        exit_code = asyncio.run(main())
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\n⏹️  Interrupted")
        sys.exit(130)


if __name__ == "__main__":
    cli_entry_point()
