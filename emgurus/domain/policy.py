from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from emgurus.domain.entities import User
from emgurus.rules.models import AbacRule, Rules


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(True)


class PolicyEngine:
    def __init__(self, rules: Rules):
        self.rules = rules

    def check_permission(
        self,
        user: User | None,
        user_roles: Sequence[str],
        action: str,
        resource: Any = None,
        context: dict[str, Any] | None = None,
    ) -> bool:
        """
        Check if the user/role is allowed to perform the action on the resource.

        Order of precedence:
        1. Public Permissions (Global)
        2. Role-Based Access Control (RBAC)
        3. Attribute-Based Access Control (ABAC)
        """
        context = context or {}

        if action in self.rules.rbac.public_permissions:
            return True

        if not user or user.status != "active":
            return False

        for role in user_roles:
            allowed_actions = self.rules.rbac.roles.get(role, [])
            if "*" in allowed_actions or action in allowed_actions:
                return True

            # Scoped wildcards ("flags:*" matches "flags:resolve")
            if ":" in action:
                scope = action.split(":")[0]
                if f"{scope}:*" in allowed_actions:
                    return True

        if resource is not None:
            for rule in self._abac_rules_for(action):
                if self._evaluate_rule(rule.if_condition, user, user_roles, resource, context):
                    if action in rule.allow:
                        return True

        return False

    def _abac_rules_for(self, action: str) -> list[AbacRule]:
        if action.startswith("flags:"):
            return self.rules.abac.flag_rules
        return self.rules.abac.review_rules

    def _evaluate_rule(
        self,
        condition: dict[str, Any],
        user: User,
        user_roles: Sequence[str],
        resource: Any,
        context: dict[str, Any],
    ) -> bool:
        """
        Evaluate condition predicates from rules.yaml.
        Supported predicates:
        - role_in: list[str]
        - owns_content: bool
        - is_assigned_reviewer: bool
        - is_flag_assignee: bool
        - kind_in: list[str]
        - state_in: list[str]
        """
        for predicate, args in condition.items():
            if predicate == "role_in":
                if not set(user_roles).intersection(set(args)):
                    return False

            elif predicate == "owns_content":
                owner = getattr(resource, "author_id", None)
                if bool(args) != (owner is not None and str(owner) == str(user.id)):
                    return False

            elif predicate == "is_assigned_reviewer":
                # The explicit phase tag decides, not the nullable reviewer column.
                assigned = (
                    getattr(resource, "state", None) == "in_review"
                    and getattr(resource, "review_phase", None) == "assigned"
                    and str(getattr(resource, "reviewer_id", None)) == str(user.id)
                )
                if bool(args) != assigned:
                    return False

            elif predicate == "is_flag_assignee":
                assignee = getattr(resource, "assigned_to", None)
                if bool(args) != (assignee is not None and str(assignee) == str(user.id)):
                    return False

            elif predicate == "kind_in":
                if getattr(resource, "kind", None) not in args:
                    return False

            elif predicate == "state_in":
                if getattr(resource, "state", None) not in args:
                    return False

            else:
                # Unknown predicates never grant access
                return False

        return True


class AuthorizationGate:
    """
    Single capability check used by every transition.

    Wraps the rules-driven PolicyEngine and turns its boolean answer into a
    Decision that names why access was refused.
    """

    def __init__(self, policy: PolicyEngine):
        self.policy = policy

    def authorize(self, actor: User | None, action: str, item: Any = None) -> Decision:
        if actor is None:
            if action in self.policy.rules.rbac.public_permissions:
                return ALLOW
            return Decision(False, "unauthenticated")
        if actor.status != "active":
            return Decision(False, "account_disabled")
        if self.policy.check_permission(actor, list(actor.roles), action, resource=item):
            return ALLOW
        return Decision(False, "not_authorized")

    def is_reviewer_candidate(self, user: User | None) -> bool:
        return bool(user and user.status == "active" and user.has_role("guru"))
