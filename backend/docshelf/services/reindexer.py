"""
DocShelf Backend — Sibling Reindexer
======================================

What:  Computes the position changes needed when one page of an API moves.
How:   Pure functions over an in-memory snapshot of sibling pages. They never
       touch storage; they return a write plan for PageService to persist.
Who:   Called by PageService on the update path (position changed) and by
       the compact operation.

Positions are 0-based: an API with n pages holds positions 0..n-1.

Moving a page from slot k to slot j is a rotation of the range between the
two slots:

    move P3 to 1        before: P0 P1 P2 P3      after: P0 P3 P1 P2
                        slot:   0  1  2  3              0  1  2  3

    Pages strictly outside [min(k, j), max(k, j)] keep their slot, the
    moved page lands on j, and every page in between shifts by one slot
    opposite to the direction of the move.

The walk visits siblings in position order and tracks one flag, `passed`,
which flips when the moved page is visited:

    before the moved page (passed=False): siblings at or above the target
        slot shift up by one to open the slot
    after the moved page (passed=True):  siblings at or below the target
        slot shift down by one to close the slot being vacated
"""

import uuid
from typing import Dict, Iterable, List, NamedTuple, Optional, Protocol, Sequence

from docshelf.exceptions import InvalidReorderRequest

POSITION_BASE = 0


class Positioned(Protocol):
    """Anything with an id and a position (ORM Page, test doubles)."""
    id: uuid.UUID
    position: int


class PositionChange(NamedTuple):
    """One entry of a write plan: give `page_id` the position `position`."""
    page_id: uuid.UUID
    position: int


def _walk_order(siblings: Iterable[Positioned]) -> List[Positioned]:
    # Ties are not expected; break them by id so the plan is deterministic
    return sorted(siblings, key=lambda page: (page.position, str(page.id)))


def check_position(requested_position: int, count: int, page_id: Optional[uuid.UUID] = None) -> None:
    """
    Reject a target slot outside [0, count - 1] for a partition of `count` pages.

    Raises:
        InvalidReorderRequest: The position is out of range.
    """
    last = POSITION_BASE + count - 1
    if not POSITION_BASE <= requested_position <= last:
        raise InvalidReorderRequest(
            message=(
                f"Position {requested_position} is out of range "
                f"[{POSITION_BASE}, {last}]"
            ),
            page_id=str(page_id) if page_id is not None else None,
            requested_position=requested_position,
            context={"min_position": POSITION_BASE, "max_position": last},
        )


def reindex(
    siblings: Sequence[Positioned],
    moved_id: uuid.UUID,
    requested_position: int,
) -> List[PositionChange]:
    """
    Plan the move of one sibling to `requested_position`.

    Args:
        siblings:           Every page of the partition, positions as stored.
                            Order does not matter; they are sorted here.
        moved_id:           ID of the page being moved. Must be in `siblings`.
        requested_position: Target slot, within [0, len(siblings) - 1].

    Returns:
        The changes, in walk order, for pages whose position actually
        changes. Applied to `siblings` they restore unique, contiguous
        positions with the moved page at `requested_position`. Empty when
        the requested position is the current one.

    Raises:
        InvalidReorderRequest: `moved_id` is not a sibling, or the requested
            position is out of range. Nothing is computed in that case.
    """
    ordered = _walk_order(siblings)

    if not any(page.id == moved_id for page in ordered):
        raise InvalidReorderRequest(
            message=f"Page '{moved_id}' is not part of the pages being reordered",
            page_id=str(moved_id),
            requested_position=requested_position,
        )

    check_position(requested_position, len(ordered), moved_id)

    plan: List[PositionChange] = []
    passed = False
    for page in ordered:
        current = page.position
        if page.id == moved_id:
            passed = True
            new_position = requested_position
        elif current < requested_position:
            new_position = current - 1 if passed else current
        elif current > requested_position:
            new_position = current if passed else current + 1
        else:
            new_position = current - 1 if passed else current + 1

        if new_position != current:
            plan.append(PositionChange(page.id, new_position))
    return plan


def compact(siblings: Sequence[Positioned]) -> List[PositionChange]:
    """
    Plan the re-sequencing of a partition to 0..n-1.

    Keeps the existing relative order (position, then id) and only emits
    pages whose position changes, so an already compact partition yields
    an empty plan. Repairs the gaps deletion leaves behind.
    """
    return [
        PositionChange(page.id, new_position)
        for new_position, page in enumerate(_walk_order(siblings), start=POSITION_BASE)
        if page.position != new_position
    ]


def apply_plan(siblings: Iterable[Positioned], plan: Iterable[PositionChange]) -> Dict[uuid.UUID, int]:
    """Return {page_id: position} after applying `plan` to `siblings`."""
    positions = {page.id: page.position for page in siblings}
    for change in plan:
        positions[change.page_id] = change.position
    return positions


def is_dense(positions: Iterable[int]) -> bool:
    """True when the positions are exactly POSITION_BASE..POSITION_BASE+n-1."""
    values = sorted(positions)
    return values == list(range(POSITION_BASE, POSITION_BASE + len(values)))
