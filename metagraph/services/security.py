"""Access policy hook consulted before every write to the graph.

A policy decides whether a user may perform an operation on an element type.
Denials are raised as NotAuthorizedError and never retried.

Example policy:
    class ReadOnlyPolicy(AccessPolicy):
        def check(self, user_id, operation, type_name, guid=None):
            raise NotAuthorizedError(
                f"{user_id} may not {operation.value} {type_name}", user_id=user_id
            )
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from metagraph.errors import NotAuthorizedError

if TYPE_CHECKING:
    from metagraph.services.type_registry import TypeRegistry

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    """Write operations subject to the access policy."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    CLASSIFY = "classify"
    LINK = "link"


class AccessPolicy(ABC):
    """Abstract base class for access policies."""

    @abstractmethod
    def check(
        self,
        user_id: str,
        operation: Operation,
        type_name: str,
        guid: str | None = None,
    ) -> None:
        """Raise NotAuthorizedError if the user may not perform the operation."""
        ...


class AllowAllPolicy(AccessPolicy):
    """Policy that permits everything."""

    def check(
        self,
        user_id: str,
        operation: Operation,
        type_name: str,
        guid: str | None = None,
    ) -> None:
        return None


class AccessRule(BaseModel):
    """Restricts an operation on a type (and its subtypes) to named users."""

    operation: Operation
    type_name: str
    allowed_users: list[str] = Field(default_factory=list)


class TypeAccessPolicy(AccessPolicy):
    """Policy built from per-type rules.

    An operation with no matching rule is permitted. When several rules match,
    the user must be allowed by every one of them.
    """

    def __init__(self, types: TypeRegistry, rules: list[AccessRule] | None = None):
        self.types = types
        self.rules = list(rules or [])

    def add_rule(self, rule: AccessRule) -> None:
        self.rules.append(rule)

    def check(
        self,
        user_id: str,
        operation: Operation,
        type_name: str,
        guid: str | None = None,
    ) -> None:
        for rule in self.rules:
            if rule.operation != operation:
                continue
            # Relationship types have no hierarchy and only match by name
            if type_name != rule.type_name and not self.types.is_type_of(
                type_name, rule.type_name
            ):
                continue
            if user_id not in rule.allowed_users:
                logger.warning(
                    f"Denied {operation.value} on {type_name} {guid or ''} for user {user_id}"
                )
                raise NotAuthorizedError(
                    f"User {user_id} is not authorized to {operation.value} {type_name}",
                    user_id=user_id,
                    guid=guid,
                )
