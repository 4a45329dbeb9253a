"""Weekly schedule model and the toggle-carve algorithm.

Blocks are handled as minute-of-day intervals ``[start, end)``. The
functions here are pure: they read a snapshot of blocks and return a plan
of :class:`CarveStep` operations; persisting the plan is the storage
layer's job. For one ``(practice, day_of_week)`` the blocks never overlap
after a plan produced here is applied to the snapshot it was computed from.
"""

import logging
from dataclasses import dataclass, replace
from typing import Iterable

from clinic_booking.core.errors import NoOpError, OverlapError, ValidationError
from clinic_booking.scheduling.timezones import MINUTES_PER_DAY, format_minutes, time_to_minutes

logger = logging.getLogger(__name__)

INSERT = 'insert'
UPDATE = 'update'
DELETE = 'delete'


@dataclass(frozen=True)
class BlockInterval:
    id: int | None
    day_of_week: int
    start: int
    end: int
    type: str

    @classmethod
    def from_model(cls, block) -> 'BlockInterval':
        return cls(
            id=block.id,
            day_of_week=block.day_of_week,
            start=time_to_minutes(block.start_time),
            end=time_to_minutes(block.end_time),
            type=block.type,
        )

    def overlaps(self, start: int, end: int) -> bool:
        return self.start < end and start < self.end

    def __str__(self) -> str:
        return f'{format_minutes(self.start)}-{format_minutes(self.end)}'


@dataclass(frozen=True)
class CarveStep:
    action: str
    day_of_week: int
    block_id: int | None = None
    start: int | None = None
    end: int | None = None
    type: str | None = None


def validate_interval(day_of_week: int, start: int, end: int) -> None:
    if not 0 <= day_of_week <= 6:
        raise ValidationError('day_of_week must be between 0 (Sunday) and 6 (Saturday).')
    if start >= end:
        raise ValidationError('start_time must be before end_time.')
    if start < 0 or end >= MINUTES_PER_DAY:
        raise ValidationError('Availability blocks must fall between 00:00 and 23:59.')


def repair_blocks(blocks: Iterable[BlockInterval]) -> tuple[list[BlockInterval], list[BlockInterval]]:
    """Split a snapshot into usable blocks and corrupt ones (``start >= end``)."""
    valid: list[BlockInterval] = []
    corrupt: list[BlockInterval] = []
    for block in blocks:
        if block.start >= block.end:
            corrupt.append(block)
        else:
            valid.append(block)
    return valid, corrupt


def blocks_for_day(blocks: Iterable[BlockInterval], day_of_week: int) -> list[BlockInterval]:
    return sorted(
        (block for block in blocks if block.day_of_week == day_of_week),
        key=lambda block: (block.start, block.end),
    )


def find_overlapping(
    blocks: Iterable[BlockInterval],
    day_of_week: int,
    start: int,
    end: int,
    exclude_ids: Iterable[int | None] = (),
) -> list[BlockInterval]:
    excluded = {block_id for block_id in exclude_ids if block_id is not None}
    return [
        block
        for block in blocks_for_day(blocks, day_of_week)
        if block.id not in excluded and block.overlaps(start, end)
    ]


def merged_coverage(blocks: Iterable[BlockInterval], day_of_week: int) -> list[tuple[int, int]]:
    """Union of a weekday's blocks; adjacent blocks join into one interval."""
    merged: list[list[int]] = []
    for block in blocks_for_day(blocks, day_of_week):
        if merged and block.start <= merged[-1][1]:
            merged[-1][1] = max(merged[-1][1], block.end)
        else:
            merged.append([block.start, block.end])
    return [(start, end) for start, end in merged]


def plan_manual_add(
    blocks: Iterable[BlockInterval],
    day_of_week: int,
    start: int,
    end: int,
    block_type: str,
) -> list[CarveStep]:
    validate_interval(day_of_week, start, end)
    conflicts = find_overlapping(blocks, day_of_week, start, end)
    if conflicts:
        raise OverlapError(
            f'{format_minutes(start)}-{format_minutes(end)} overlaps existing block {conflicts[0]}.'
        )
    return [CarveStep(INSERT, day_of_week, start=start, end=end, type=block_type)]


def plan_toggle(
    blocks: Iterable[BlockInterval],
    day_of_week: int,
    toggle_start: int,
    duration: int,
    block_type: str,
) -> list[CarveStep]:
    """Plan the carve for toggling ``[toggle_start, toggle_start + duration)``.

    An uncovered window becomes a new block of ``block_type``. A covered
    window is cut out of the earliest block it intersects: the block is
    deleted, truncated at the front or back, or split around the window.
    """
    toggle_end = toggle_start + duration
    validate_interval(day_of_week, toggle_start, toggle_end)
    blocks = list(blocks)

    intersecting = find_overlapping(blocks, day_of_week, toggle_start, toggle_end)
    if not intersecting:
        return plan_manual_add(blocks, day_of_week, toggle_start, toggle_end, block_type)

    block = intersecting[0]
    actual_start = max(block.start, toggle_start)
    actual_end = min(block.end, toggle_end)
    # find_overlapping is strict today; a touching-only match must still change nothing.
    if actual_start >= actual_end:
        raise NoOpError()

    if actual_start == block.start and actual_end == block.end:
        return [CarveStep(DELETE, day_of_week, block_id=block.id)]

    if actual_start == block.start:
        return [CarveStep(UPDATE, day_of_week, block_id=block.id, start=actual_end, end=block.end, type=block.type)]

    if actual_end == block.end:
        return [CarveStep(UPDATE, day_of_week, block_id=block.id, start=block.start, end=actual_start, type=block.type)]

    # Interior window: shrink first so the inserted tail never overlaps.
    return [
        CarveStep(UPDATE, day_of_week, block_id=block.id, start=block.start, end=actual_start, type=block.type),
        CarveStep(INSERT, day_of_week, start=actual_end, end=block.end, type=block.type),
    ]


def apply_plan(blocks: Iterable[BlockInterval], steps: Iterable[CarveStep]) -> list[BlockInterval]:
    """Apply a plan to an in-memory snapshot; inserted blocks have ``id=None``."""
    result = list(blocks)
    for step in steps:
        if step.action == INSERT:
            result.append(BlockInterval(None, step.day_of_week, step.start, step.end, step.type))
        elif step.action == UPDATE:
            result = [
                replace(block, start=step.start, end=step.end) if block.id == step.block_id else block
                for block in result
            ]
        elif step.action == DELETE:
            result = [block for block in result if block.id != step.block_id]
        else:
            raise ValueError(f'Unknown carve action {step.action!r}')
    return result


def assert_non_overlapping(blocks: Iterable[BlockInterval]) -> None:
    by_day: dict[int, list[BlockInterval]] = {}
    for block in blocks:
        by_day.setdefault(block.day_of_week, []).append(block)

    for day_of_week, day_blocks in by_day.items():
        ordered = sorted(day_blocks, key=lambda block: (block.start, block.end))
        for previous, current in zip(ordered, ordered[1:]):
            if current.start < previous.end:
                logger.warning(
                    'Overlapping availability blocks on day %s: %s and %s', day_of_week, previous, current
                )
                raise OverlapError(f'Availability blocks {previous} and {current} overlap.')
