from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Protocol

# Matches the Numeric(14, 4) storage scale so recomputation is idempotent.
ALLOCATION_QUANTUM = Decimal('0.0001')


class CostedPallet(Protocol):
    id: int
    purchase_cost: Decimal
    sales_tax: Decimal | None


class Member(Protocol):
    id: int


@dataclass(frozen=True)
class AllocationPlan:
    """New ``allocated_cost`` per affected item; ``None`` clears the value."""

    allocations: dict[int, Decimal | None] = field(default_factory=dict)
    pallet_ids: tuple[int, ...] = ()

    def merged(self, other: AllocationPlan) -> AllocationPlan:
        allocations = dict(self.allocations)
        allocations.update(other.allocations)
        pallet_ids = self.pallet_ids + tuple(pid for pid in other.pallet_ids if pid not in self.pallet_ids)
        return AllocationPlan(allocations=allocations, pallet_ids=pallet_ids)


def total_pallet_cost(pallet: CostedPallet) -> Decimal:
    return pallet.purchase_cost + (pallet.sales_tax if pallet.sales_tax is not None else Decimal('0'))


def allocated_share(pallet: CostedPallet, member_count: int) -> Decimal:
    if member_count < 1:
        raise ValueError('Member count must be at least 1')
    return (total_pallet_cost(pallet) / Decimal(member_count)).quantize(ALLOCATION_QUANTUM, rounding=ROUND_HALF_EVEN)


def compute_allocated_cost(pallet: CostedPallet, members: Iterable[Member]) -> dict[int, Decimal]:
    """Equal split of the pallet's total cost across its current members."""
    member_ids = _unique_ids(members)
    if not member_ids:
        return {}
    share = allocated_share(pallet, len(member_ids))
    return {member_id: share for member_id in member_ids}


def _unique_ids(members: Iterable[Member]) -> list[int]:
    seen: dict[int, None] = {}
    for member in members:
        seen.setdefault(member.id, None)
    return list(seen)


def plan_add(pallet: CostedPallet, members: Iterable[Member], item_id: int) -> AllocationPlan:
    """Allocation after ``item_id`` joins ``pallet``; ``members`` are the existing ones."""
    ids = [member_id for member_id in _unique_ids(members) if member_id != item_id]
    ids.append(item_id)
    share = allocated_share(pallet, len(ids))
    return AllocationPlan(allocations={member_id: share for member_id in ids}, pallet_ids=(pallet.id,))


def plan_remove(pallet: CostedPallet, members: Iterable[Member], item_id: int) -> AllocationPlan:
    """Allocation for the members left behind once ``item_id`` leaves ``pallet``."""
    remaining = [member_id for member_id in _unique_ids(members) if member_id != item_id]
    if not remaining:
        return AllocationPlan(pallet_ids=(pallet.id,))
    share = allocated_share(pallet, len(remaining))
    return AllocationPlan(allocations={member_id: share for member_id in remaining}, pallet_ids=(pallet.id,))


def plan_move(
    item_id: int,
    *,
    source: CostedPallet | None,
    source_members: Iterable[Member] = (),
    target: CostedPallet | None,
    target_members: Iterable[Member] = (),
) -> AllocationPlan:
    """Reallocate both sides of a pallet reassignment.

    A move to no pallet clears the item's allocated cost.
    """
    if source is not None and target is not None and source.id == target.id:
        return AllocationPlan()

    plan = AllocationPlan()
    if source is not None:
        plan = plan.merged(plan_remove(source, source_members, item_id))
    if target is not None:
        plan = plan.merged(plan_add(target, target_members, item_id))
    else:
        plan = plan.merged(AllocationPlan(allocations={item_id: None}))
    return plan


def plan_reprice(pallet: CostedPallet, members: Iterable[Member]) -> AllocationPlan:
    """Allocation after the pallet's own cost changed with membership unchanged."""
    return AllocationPlan(allocations=dict(compute_allocated_cost(pallet, members)), pallet_ids=(pallet.id,))
