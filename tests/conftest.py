import os
from pathlib import Path

import pytest

from emgurus.adapters.clock import FixedClock
from emgurus.adapters.email import DevEmailAdapter
from emgurus.adapters.sqlite.migrator import SQLiteMigrator
from emgurus.app_shell.context import ServiceContext
from emgurus.domain.entities import User
from emgurus.rules.loader import load_rules
from emgurus.rules.models import Rules


@pytest.fixture
def rules() -> Rules:
    # Tests run from the project root.
    rules_path = Path("rules.yaml").resolve()
    if not rules_path.exists():
        raise FileNotFoundError(f"Rules not found at {rules_path}")
    return load_rules(rules_path)


@pytest.fixture
def db_path(tmp_path) -> str:
    path = os.path.join(str(tmp_path), "emgurus.db")
    SQLiteMigrator(path, "migrations").run_migrations()
    return path


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def dev_email() -> DevEmailAdapter:
    return DevEmailAdapter()


@pytest.fixture
def sqlite_ctx(db_path: str, rules: Rules, dev_email: DevEmailAdapter, clock) -> ServiceContext:
    """
    A full ServiceContext backed by a temporary, migrated SQLite database.
    """
    return ServiceContext.create(db_path, rules, email=dev_email, clock=clock)


@pytest.fixture
def mem_ctx(rules: Rules, dev_email: DevEmailAdapter, clock) -> ServiceContext:
    return ServiceContext.in_memory(rules, email=dev_email, clock=clock)


@pytest.fixture
def make_user():
    """Factory saving a user with the given roles into a context's user store."""

    def make(ctx: ServiceContext, email: str, *roles: str) -> User:
        return ctx.users.save(
            User(email=email, display_name=email.split("@")[0], roles=list(roles))
        )

    return make
