"""
Authorization chain.

authorize() loads the target (or, for creates, its parent), walks the
foreign keys up to the root resource and applies that root's rules:

  event    any identity reads, only the admin credential mutates
  artist   any identity reads and edits, only the admin credential deletes
  stage / lineup / set_time / collaboration
           any identity reads; mutations need the admin credential or
           ownership of the root event
  group    creator or member reads (others get NOT_FOUND), creator or admin
           member updates, creator alone deletes
  group_member
           listing follows group read, inviting follows group update, a
           membership can be changed by its own user or a group manager

Existence is always checked before permission. Nothing is cached.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from common import store
from common.errors import NotFound, Unauthorized
from common.identity import Principal

logger = logging.getLogger(__name__)


class Operation(Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class Decision(Enum):
    ALLOW = "allow"
    DENY = "deny"
    NOT_FOUND = "not_found"


# child kind -> (parent kind, foreign key on the child)
PARENTS = {
    "stage": ("event", "event_id"),
    "lineup": ("event", "event_id"),
    "set_time": ("stage", "stage_id"),
    "collaboration": ("set_time", "set_time_id"),
    "group_member": ("group", "group_id"),
}

EVENT_SCOPED = {"stage", "lineup", "set_time", "collaboration"}

NOT_FOUND_MESSAGES = {
    "event": "Event not found",
    "stage": "Stage not found",
    "artist": "Artist not found",
    "lineup": "Lineup entry not found",
    "set_time": "Set time not found",
    "collaboration": "Collaboration not found",
    "group": "Group schedule not found or you don't have access",
    "group_member": "Group member not found",
}


@dataclass
class Access:
    decision: Decision
    resource: dict | None = None
    lineage: dict = field(default_factory=dict)
    missing: str = ""

    @property
    def allowed(self) -> bool:
        return self.decision is Decision.ALLOW

    def row(self, kind: str) -> dict | None:
        return self.lineage.get(kind)


# ---------------------------------------------------------------------------
# Lineage
# ---------------------------------------------------------------------------

def _walk(kind: str, row: dict) -> tuple[dict, bool]:
    """Collect the row and its ancestors. The flag is True if the chain is broken."""
    lineage = {kind: row}
    while kind in PARENTS:
        parent_kind, foreign_key = PARENTS[kind]
        parent_id = row.get(foreign_key)
        parent = store.get(parent_kind, parent_id) if parent_id is not None else None
        if parent is None:
            logger.warning(
                "%s %s points at missing %s %s", kind, row.get("id"), parent_kind, parent_id,
            )
            return lineage, True
        lineage[parent_kind] = parent
        kind, row = parent_kind, parent
    return lineage, False


def membership(group_id, user_id: str | None) -> dict | None:
    if user_id is None:
        return None
    rows = store.query("group_member", store.where(group_id=group_id, user_id=user_id))
    return rows[0] if rows else None


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def _event_rule(principal: Principal, operation: Operation) -> Decision:
    if operation is Operation.READ:
        return Decision.ALLOW if principal.authenticated else Decision.DENY
    return Decision.ALLOW if principal.admin else Decision.DENY


def _artist_rule(principal: Principal, operation: Operation) -> Decision:
    if operation is Operation.DELETE:
        return Decision.ALLOW if principal.admin else Decision.DENY
    return Decision.ALLOW if principal.authenticated else Decision.DENY


def _event_scoped_rule(principal: Principal, operation: Operation, event: dict) -> Decision:
    if operation is Operation.READ:
        return Decision.ALLOW if principal.authenticated else Decision.DENY
    if principal.admin:
        return Decision.ALLOW
    if principal.authenticated and event.get("created_by") == principal.user_id:
        return Decision.ALLOW
    return Decision.DENY


def _group_rule(principal: Principal, operation: Operation, group: dict) -> Decision:
    if not principal.authenticated:
        return Decision.DENY
    is_creator = group.get("created_by") == principal.user_id
    if is_creator:
        return Decision.ALLOW
    if operation is Operation.DELETE:
        return Decision.DENY

    member = membership(group["id"], principal.user_id)
    if operation is Operation.READ:
        # Forbidden and absent look the same to outsiders
        return Decision.ALLOW if member else Decision.NOT_FOUND
    if member and member.get("is_admin"):
        return Decision.ALLOW
    return Decision.DENY


def _group_member_rule(principal, operation, member, group) -> Decision:
    if operation is Operation.READ:
        return _group_rule(principal, Operation.READ, group)
    if operation is Operation.CREATE:
        return _group_rule(principal, Operation.UPDATE, group)
    if principal.authenticated and member and member.get("user_id") == principal.user_id:
        return Decision.ALLOW
    return _group_rule(principal, Operation.UPDATE, group)


def _decide(principal: Principal, kind: str, operation: Operation, resource, lineage) -> Decision:
    if kind == "event":
        return _event_rule(principal, operation)
    if kind == "artist":
        return _artist_rule(principal, operation)
    if kind in EVENT_SCOPED:
        return _event_scoped_rule(principal, operation, lineage["event"])
    if kind == "group":
        if operation is Operation.CREATE:
            return Decision.ALLOW if principal.authenticated else Decision.DENY
        return _group_rule(principal, operation, lineage["group"])
    if kind == "group_member":
        return _group_member_rule(principal, operation, resource, lineage["group"])
    logger.error("No authorization rule for kind %s", kind)
    return Decision.DENY


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def authorize(principal: Principal, kind: str, operation: Operation,
              resource_id=None, parent_id=None) -> Access:
    """
    Decide whether principal may perform operation on a resource.
    Creates of child kinds pass parent_id and are checked against the parent;
    every other operation passes resource_id.
    """
    if operation is Operation.CREATE and kind not in PARENTS:
        return Access(_decide(principal, kind, operation, None, {}))

    if operation is Operation.CREATE:
        anchor_kind, anchor_id = PARENTS[kind][0], parent_id
    else:
        anchor_kind, anchor_id = kind, resource_id

    anchor = store.get(anchor_kind, anchor_id) if anchor_id is not None else None
    if anchor is None:
        return Access(Decision.NOT_FOUND, missing=anchor_kind)

    lineage, broken = _walk(anchor_kind, anchor)
    resource = anchor if anchor_kind == kind else None
    if broken:
        return Access(Decision.DENY, resource, lineage)

    decision = _decide(principal, kind, operation, resource, lineage)
    access = Access(decision, resource, lineage)
    if decision is Decision.NOT_FOUND:
        # only the group read rule collapses a denial into absence
        access.missing = "group"
    return access


def require(principal: Principal, kind: str, operation: Operation,
            resource_id=None, parent_id=None) -> Access:
    """authorize(), raising NotFound / Unauthorized unless allowed."""
    access = authorize(principal, kind, operation, resource_id, parent_id)
    if access.decision is Decision.NOT_FOUND:
        raise NotFound(NOT_FOUND_MESSAGES.get(access.missing, "Resource not found"))
    if access.decision is Decision.DENY:
        logger.warning(
            "Denied %s on %s %s for user=%s admin=%s",
            operation.value, kind, resource_id or parent_id, principal.user_id, principal.admin,
        )
        raise Unauthorized()
    return access
