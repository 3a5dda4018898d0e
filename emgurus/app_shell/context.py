from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from emgurus.adapters.clock import SystemClock
from emgurus.adapters.email import DevEmailAdapter
from emgurus.adapters.memory import InMemoryNotificationRepo, InMemoryReviewStore, InMemoryUserRepo
from emgurus.adapters.sqlite.repos import SQLiteNotificationRepo, SQLiteReviewStore, SQLiteUserRepo
from emgurus.components.assignments import AssignmentManager
from emgurus.components.lifecycle import LifecycleComponent
from emgurus.components.notifications import NotificationDispatcher, OutboxProcessor
from emgurus.domain.policy import AuthorizationGate, PolicyEngine
from emgurus.ports.clock import ClockPort
from emgurus.ports.email import EmailPort
from emgurus.rules.models import Rules


@dataclass
class ServiceContext:
    """Everything a request handler or CLI command needs, wired once."""

    rules: Rules
    store: Any  # review store + outbox
    users: Any
    notifications: Any
    email: EmailPort
    clock: ClockPort
    gate: AuthorizationGate
    assignments: AssignmentManager
    lifecycle: LifecycleComponent
    dispatcher: NotificationDispatcher
    outbox: OutboxProcessor

    @classmethod
    def create(
        cls,
        db_path: str,
        rules: Rules,
        email: EmailPort | None = None,
        clock: ClockPort | None = None,
    ) -> ServiceContext:
        return cls._wire(
            rules,
            store=SQLiteReviewStore(db_path),
            users=SQLiteUserRepo(db_path),
            notifications=SQLiteNotificationRepo(db_path),
            email=email,
            clock=clock,
        )

    @classmethod
    def in_memory(
        cls,
        rules: Rules,
        email: EmailPort | None = None,
        clock: ClockPort | None = None,
    ) -> ServiceContext:
        return cls._wire(
            rules,
            store=InMemoryReviewStore(),
            users=InMemoryUserRepo(),
            notifications=InMemoryNotificationRepo(),
            email=email,
            clock=clock,
        )

    @classmethod
    def _wire(
        cls,
        rules: Rules,
        *,
        store: Any,
        users: Any,
        notifications: Any,
        email: EmailPort | None,
        clock: ClockPort | None,
    ) -> ServiceContext:
        clock = clock or SystemClock()
        email = email or DevEmailAdapter()
        gate = AuthorizationGate(PolicyEngine(rules))
        assignments = AssignmentManager(store, clock)
        lifecycle = LifecycleComponent(store, users, gate, assignments, rules.review, clock)
        dispatcher = NotificationDispatcher(users, notifications, email, rules.notifications, clock)
        outbox = OutboxProcessor(store, dispatcher, rules.notifications, clock)

        return cls(
            rules=rules,
            store=store,
            users=users,
            notifications=notifications,
            email=email,
            clock=clock,
            gate=gate,
            assignments=assignments,
            lifecycle=lifecycle,
            dispatcher=dispatcher,
            outbox=outbox,
        )
