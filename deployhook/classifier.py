"""
Decide what to do with an authenticated delivery.

Only `push` events are eligible. A push is accepted when its branch is in
the allowed set. A push without a ref skips the branch filter entirely and
is accepted on event type alone; callers relying on branch filtering should
be aware of this.
"""

from collections.abc import Collection
from dataclasses import dataclass


PUSH_EVENT = "push"
BRANCH_PREFIX = "refs/heads/"


@dataclass(frozen=True)
class Accept:
    branch: str | None = None


@dataclass(frozen=True)
class IgnoredEvent:
    event: str | None


@dataclass(frozen=True)
class IgnoredBranch:
    branch: str


Decision = Accept | IgnoredEvent | IgnoredBranch


def branch_from_ref(ref: str) -> str:
    """refs/heads/main -> main. Other refs are returned unchanged."""
    return ref.removeprefix(BRANCH_PREFIX)


def classify(event_type: str | None, ref: str | None,
             allowed_branches: Collection[str]) -> Decision:
    if event_type != PUSH_EVENT:
        return IgnoredEvent(event_type)

    if not ref:
        return Accept()

    branch = branch_from_ref(ref)
    if branch not in allowed_branches:
        return IgnoredBranch(branch)
    return Accept(branch)
