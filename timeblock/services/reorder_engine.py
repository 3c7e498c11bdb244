"""Manual re-sequencing of activities, including moving completed ones back."""

import logging
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from timeblock.core.errors import InvalidMoveError
from timeblock.core.logging import span
from timeblock.domain.activity import Activity, Partition, sorted_partition
from timeblock.domain.update_models import ActivityPatch


if TYPE_CHECKING:
    from timeblock.services.context import SchedulerContext


logger = logging.getLogger(__name__)


class Position(BaseModel):
    """Index within one partition's ordered list."""

    partition: Partition
    index: int = Field(..., ge=0)


class MoveRequest(BaseModel):
    """Move the activity at ``source`` to ``destination``."""

    source: Position
    destination: Position

    @property
    def is_noop(self) -> bool:
        return self.source == self.destination


def _renumber(items: list[Activity], moved_id: str | None = None) -> list[tuple[str, ActivityPatch]]:
    """Patches setting ``order = index`` wherever it changed (the moved item is handled by the caller)."""
    return [
        (a.id, ActivityPatch(order=index))
        for index, a in enumerate(items)
        if a.id != moved_id and a.order != index
    ]


def plan_move(activities: list[Activity], move: MoveRequest) -> list[tuple[str, ActivityPatch]]:
    """Compute the patches that carry out *move*.

    Same-partition moves renumber that partition. A completed -> active move
    revives the activity (not completed, full ``initial_duration`` left, no end
    time) at the destination index and renumbers both partitions. Active ->
    completed is not a move; completion goes through the sequencer.

    Raises:
        InvalidMoveError: Unknown source position or active -> completed move
    """
    if move.source.partition == Partition.ACTIVE and move.destination.partition == Partition.COMPLETED:
        raise InvalidMoveError("Active activities can only be completed by finishing their timer")

    source_list = sorted_partition(activities, move.source.partition)
    if move.source.index >= len(source_list):
        raise InvalidMoveError(
            f"No {move.source.partition} activity at position {move.source.index} (have {len(source_list)})"
        )
    if move.is_noop:
        return []

    moved = source_list.pop(move.source.index)

    if move.source.partition == move.destination.partition:
        index = min(move.destination.index, len(source_list))
        source_list.insert(index, moved)
        return _renumber(source_list)

    destination_list = sorted_partition(activities, move.destination.partition)
    index = min(move.destination.index, len(destination_list))
    destination_list.insert(index, moved)

    revive = ActivityPatch(
        is_completed=False,
        is_running=False,
        duration=moved.initial_duration,
        end_time=None,
        order=index,
    )
    return [(moved.id, revive), *_renumber(destination_list, moved.id), *_renumber(source_list)]


async def move_activity(ctx: "SchedulerContext", move: MoveRequest) -> list[Activity]:
    """Carry out *move* and persist every changed activity as one batch.

    Returns:
        The destination partition in its new order

    Raises:
        InvalidMoveError: The move is not allowed
        StoreWriteError: The batch write failed (rolled back locally)
    """
    with span("reorder_engine.move_activity"):
        patches = plan_move(ctx.snapshot.activities(), move)
        if patches:
            await ctx.submit_batch(patches)
            logger.info(
                "Moved activity",
                extra={
                    "source": move.source.model_dump(mode="json"),
                    "destination": move.destination.model_dump(mode="json"),
                    "changed": len(patches),
                },
            )
        if move.destination.partition == Partition.ACTIVE:
            return ctx.snapshot.active()
        return ctx.snapshot.completed()
