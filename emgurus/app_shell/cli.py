import argparse
import logging
import sys

import uvicorn

from emgurus.adapters.sqlite.migrator import SQLiteMigrator
from emgurus.api.deps import Settings, build_email, get_rules, get_settings
from emgurus.app_shell.config import ConfigurationError, validate_ops_rules
from emgurus.app_shell.context import ServiceContext
from emgurus.domain.entities import User

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("cli")

ROLES = ("user", "guru", "admin")


def get_context(settings: Settings) -> ServiceContext:
    try:
        rules = get_rules()
        validate_ops_rules(rules, settings.data_dir)
    except (FileNotFoundError, ValueError, ConfigurationError) as e:
        logger.error("Cannot start: %s", e)
        sys.exit(1)
    return ServiceContext.create(settings.db_path, rules, email=build_email(settings, rules))


def handle_migrate(settings: Settings, args: argparse.Namespace) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    applied = SQLiteMigrator(settings.db_path, str(settings.migrations_dir)).run_migrations()
    print(f"Applied {len(applied)} migration(s) to {settings.db_path}.")


def handle_grant_role(ctx: ServiceContext, args: argparse.Namespace) -> None:
    user = ctx.users.get_by_email(args.email)
    if user is None:
        if not args.create:
            logger.error("User %s not found. Pass --create to add them.", args.email)
            sys.exit(1)
        user = User(email=args.email, display_name=args.name or "", roles=["user"])

    roles = list(user.roles)
    if args.revoke:
        roles = [r for r in roles if r != args.role]
    elif args.role not in roles:
        roles.append(args.role)

    saved = ctx.users.save(user.model_copy(update={"roles": roles}))
    print(f"{saved.email} ({saved.id}) roles: {', '.join(saved.roles) or '-'}")


def handle_drain_outbox(ctx: ServiceContext, args: argparse.Namespace) -> None:
    result = ctx.outbox.drain(limit=args.limit)
    print(
        f"Processed {result.processed} event(s): "
        f"{result.delivered} delivered, {result.failed} failed."
    )


def handle_serve(args: argparse.Namespace) -> None:
    uvicorn.run("emgurus.api.main:app", host=args.host, port=args.port, reload=args.reload)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="EMGurus review service CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # migrate
    subparsers.add_parser("migrate", help="Apply pending database migrations")

    # grant-role
    grant_parser = subparsers.add_parser("grant-role", help="Grant (or revoke) a role by e-mail")
    grant_parser.add_argument("email", help="E-mail of the user")
    grant_parser.add_argument("role", choices=ROLES, help="Role to grant")
    grant_parser.add_argument("--revoke", action="store_true", help="Remove the role instead")
    grant_parser.add_argument("--create", action="store_true", help="Create the user if missing")
    grant_parser.add_argument("--name", help="Display name for a created user")

    # drain-outbox
    drain_parser = subparsers.add_parser("drain-outbox", help="Deliver pending notifications")
    drain_parser.add_argument("--limit", type=int, default=None, help="Max events to process")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.add_argument("--reload", action="store_true")

    args = parser.parse_args(argv)
    settings = get_settings()

    if args.command == "migrate":
        handle_migrate(settings, args)
    elif args.command == "serve":
        handle_serve(args)
    elif args.command == "grant-role":
        handle_grant_role(get_context(settings), args)
    elif args.command == "drain-outbox":
        handle_drain_outbox(get_context(settings), args)


if __name__ == "__main__":
    main()
