"""Planning helpers for the gig pack "smart merge".

Every child collection of a gig is reconciled the same way: rows whose id is
no longer submitted are deleted, submitted rows are upserted, and sort order
is rewritten from the submission's array position. The functions here only
compute *what* should change so they can be exercised without a database.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterable, Optional, Sequence, TypeVar

from .. import schemas

T = TypeVar("T")


@dataclass(frozen=True)
class MergePlan(Generic[T]):
    """Changes needed to make a persisted collection match a submission."""

    to_delete: frozenset[uuid.UUID]
    to_update: tuple[tuple[int, T], ...]
    to_insert: tuple[tuple[int, T], ...]


def plan_merge(
    persisted_ids: Iterable[uuid.UUID],
    submitted: Sequence[T],
    key: Callable[[T], Optional[uuid.UUID]],
) -> MergePlan[T]:
    """Diff ``submitted`` against ``persisted_ids`` by identity.

    Items without an id, or with an id that is not persisted, are inserts.
    Positions in the returned tuples are the items' indexes in ``submitted``.
    """

    existing = set(persisted_ids)
    submitted_ids = {key(item) for item in submitted if key(item) is not None}

    updates: list[tuple[int, T]] = []
    inserts: list[tuple[int, T]] = []
    for position, item in enumerate(submitted):
        item_id = key(item)
        if item_id is not None and item_id in existing:
            updates.append((position, item))
        else:
            inserts.append((position, item))

    return MergePlan(
        to_delete=frozenset(existing - submitted_ids),
        to_update=tuple(updates),
        to_insert=tuple(inserts),
    )


@dataclass(frozen=True)
class ExistingRole:
    """The parts of a persisted ``gig_roles`` row that role matching needs."""

    id: uuid.UUID
    role_name: str
    musician_name: Optional[str]
    musician_id: Optional[uuid.UUID]


@dataclass
class RolePlan:
    to_delete: frozenset[uuid.UUID]
    to_update: list[tuple[uuid.UUID, schemas.RoleInput]] = field(default_factory=list)
    to_insert: list[schemas.RoleInput] = field(default_factory=list)
    duplicates: list[schemas.RoleInput] = field(default_factory=list)
    # Submitted gig role ids that do not belong to this gig; they are ignored.
    unknown_ids: list[uuid.UUID] = field(default_factory=list)
    # Final lineup order: a persisted role id, or an index into ``to_insert``.
    ordering: list[uuid.UUID | int] = field(default_factory=list)


def _name_key(role_name: Optional[str], musician_name: Optional[str]) -> tuple[str, str]:
    return (role_name or "", musician_name or "")


def plan_roles(
    existing: Sequence[ExistingRole],
    submitted: Sequence[schemas.RoleInput],
) -> RolePlan:
    """Reconcile submitted lineup entries against the gig's persisted roles.

    Entries carrying a ``gig_role_id`` of this gig are updates; every other
    persisted role is deleted. Entries without a ``gig_role_id`` are new
    unless they duplicate a surviving role or an earlier new entry: by linked
    account when one is given, otherwise by (role name, musician name).
    """

    existing_by_id = {role.id: role for role in existing}
    submitted_ids = {
        role.gig_role_id for role in submitted if role.gig_role_id is not None
    }
    plan = RolePlan(to_delete=frozenset(set(existing_by_id) - submitted_ids))

    # Updates apply before new entries are matched, so renamed roles claim
    # their submitted names rather than their persisted ones.
    updated_names = {
        entry.gig_role_id: _name_key(entry.role, entry.name)
        for entry in submitted
        if entry.gig_role_id in existing_by_id
    }
    surviving = [role for role in existing if role.id not in plan.to_delete]
    claimed_accounts = {role.musician_id for role in surviving if role.musician_id is not None}
    claimed_names = {
        updated_names.get(role.id, _name_key(role.role_name, role.musician_name))
        for role in surviving
    }

    for entry in submitted:
        if entry.gig_role_id is not None:
            if entry.gig_role_id in existing_by_id:
                plan.to_update.append((entry.gig_role_id, entry))
                plan.ordering.append(entry.gig_role_id)
            else:
                plan.unknown_ids.append(entry.gig_role_id)
            continue

        account_id = entry.linked_account_id
        if account_id is not None:
            if account_id in claimed_accounts:
                plan.duplicates.append(entry)
                continue
            claimed_accounts.add(account_id)
        else:
            name_key = _name_key(entry.role, entry.name)
            if name_key in claimed_names:
                plan.duplicates.append(entry)
                continue
            claimed_names.add(name_key)

        plan.ordering.append(len(plan.to_insert))
        plan.to_insert.append(entry)

    return plan
