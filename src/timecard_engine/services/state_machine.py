"""Timecard state machine with transition and role validation."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from timecard_engine.services.errors import InvalidTransitionError


class TimecardStatus(str, Enum):
    """Timecard status values."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    EDITED_DRAFT = "edited_draft"


class ActorRole(str, Enum):
    """Capacity in which an actor invokes a lifecycle operation."""

    OWNER = "owner"
    APPROVER = "approver"
    ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    """The user performing an operation, passed explicitly to every call."""

    user_id: UUID
    role: ActorRole

    @property
    def can_approve(self) -> bool:
        return self.role in (ActorRole.APPROVER, ActorRole.ADMIN)


_OWNER = frozenset({ActorRole.OWNER})
_APPROVERS = frozenset({ActorRole.APPROVER, ActorRole.ADMIN})
_ADMIN = frozenset({ActorRole.ADMIN})


class TimecardStateMachine:
    """State machine for timecard status transitions.

    Allowed transitions (roles):
    - draft → submitted (owner)
    - draft → edited_draft (approver, admin)
    - edited_draft → submitted (owner)
    - edited_draft → edited_draft (approver, admin)
    - submitted → approved (approver, admin)
    - submitted → rejected (approver, admin)
    - rejected → draft (owner)
    - rejected → submitted (owner)
    - approved → draft (admin, reopen for correction)

    ``edited_draft`` only marks a draft an approver has touched; it follows
    the same rules as ``draft``. No state is absorbing.
    """

    # {from_status: {to_status: roles allowed to request it}}
    VALID_TRANSITIONS: dict[str, dict[str, frozenset[ActorRole]]] = {
        TimecardStatus.DRAFT: {
            TimecardStatus.SUBMITTED: _OWNER,
            TimecardStatus.EDITED_DRAFT: _APPROVERS,
        },
        TimecardStatus.EDITED_DRAFT: {
            TimecardStatus.SUBMITTED: _OWNER,
            TimecardStatus.EDITED_DRAFT: _APPROVERS,
        },
        TimecardStatus.SUBMITTED: {
            TimecardStatus.APPROVED: _APPROVERS,
            TimecardStatus.REJECTED: _APPROVERS,
        },
        TimecardStatus.REJECTED: {
            TimecardStatus.DRAFT: _OWNER,
            TimecardStatus.SUBMITTED: _OWNER,
        },
        TimecardStatus.APPROVED: {
            TimecardStatus.DRAFT: _ADMIN,
        },
    }

    # Statuses whose daily entries may be edited in place
    EDITABLE = {
        TimecardStatus.DRAFT,
        TimecardStatus.EDITED_DRAFT,
    }

    @classmethod
    def is_valid_status(cls, status: str) -> bool:
        return status in cls.VALID_TRANSITIONS

    @classmethod
    def can_transition(cls, from_status: str, to_status: str, role: str) -> bool:
        """Check if a transition is legal and permitted for the role."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, {})
        roles = allowed.get(to_status)
        return roles is not None and role in roles

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str, role: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, {})
        if to_status not in allowed:
            raise InvalidTransitionError(from_status, to_status)
        if role not in allowed[to_status]:
            raise InvalidTransitionError(
                from_status,
                to_status,
                f"role '{_value(role)}' may not perform this transition",
            )

    @classmethod
    def get_next_statuses(cls, current_status: str, role: str | None = None) -> list[str]:
        """Get valid next statuses, optionally restricted to one role."""
        allowed = cls.VALID_TRANSITIONS.get(current_status, {})
        return [
            _value(to_status)
            for to_status, roles in allowed.items()
            if role is None or role in roles
        ]

    @classmethod
    def is_editable(cls, status: str) -> bool:
        """Check if daily entries can be edited without a transition."""
        return status in cls.EDITABLE

    @classmethod
    def is_rejection(cls, from_status: str, to_status: str) -> bool:
        return from_status == TimecardStatus.SUBMITTED and to_status == TimecardStatus.REJECTED


def _value(item: str) -> str:
    return item.value if isinstance(item, Enum) else item
