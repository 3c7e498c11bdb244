"""Unit tests for the activity service."""

from datetime import timedelta

import pytest

from timeblock.core.config import Constants
from timeblock.core.errors import (
    ActivityNotFoundError,
    ActivityValidationError,
    InvalidDurationError,
    InvalidTransitionError,
    StoreWriteError,
)
from timeblock.domain.create_models import ActivityCreate
from timeblock.domain.update_models import ActivityEdit
from timeblock.services import activity_service
from timeblock.services.activity_service import format_hms
from timeblock.services.session_controller import SessionState


@pytest.mark.unit
class TestFormatHms:
    """Tests for format_hms."""

    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [(0, "00:00:00"), (59, "00:00:59"), (61, "00:01:01"), (3723, "01:02:03"), (360000, "100:00:00")],
    )
    def test_formats(self, seconds, expected):
        assert format_hms(seconds) == expected

    def test_negative_is_zero(self):
        assert format_hms(-5) == "00:00:00"


@pytest.mark.unit
class TestAddActivity:
    """Tests for add_activity."""

    async def test_appends_to_active_queue(self, ctx, seed, patched_db, clock):
        await seed(("A", 10), ("B", 10))

        activity_id = await activity_service.add_activity(ctx, ActivityCreate(title="  Read  ", minutes=1, seconds=30))

        record = await patched_db.get_record(collection=Constants.ACTIVITIES_COLLECTION, record_id=activity_id)
        assert record["title"] == "Read"
        assert record["initialDuration"] == 90
        assert record["duration"] == 90
        assert record["order"] == 2
        assert record["isRunning"] is False
        assert record["isCompleted"] is False
        assert record["timeSpent"] == 0
        assert record["scope"] == ctx.scope
        assert record["createdAt"] == clock.now()

    async def test_zero_duration_is_rejected_before_write(self, ctx, patched_db):
        with pytest.raises(InvalidDurationError):
            await activity_service.add_activity(ctx, ActivityCreate(title="Nothing"))

        assert patched_db.write_count == 0

    async def test_blank_title_is_rejected(self, ctx, patched_db):
        with pytest.raises(ActivityValidationError):
            await activity_service.add_activity(ctx, ActivityCreate(title="   ", seconds=5))

        assert patched_db.write_count == 0

    async def test_store_failure_surfaces(self, ctx, patched_db):
        patched_db.fail_writes = True

        with pytest.raises(StoreWriteError) as exc_info:
            await activity_service.add_activity(ctx, ActivityCreate(title="A", seconds=5))

        assert exc_info.value.operation == "create"


@pytest.mark.unit
class TestEditActivity:
    """Tests for edit_activity."""

    async def test_rename(self, ctx, seed):
        [a] = await seed(("A", 10))

        edited = await activity_service.edit_activity(ctx, a, ActivityEdit(title="Renamed"))

        assert edited.title == "Renamed"
        assert edited.duration == 10

    async def test_duration_edit_resets_partial_progress(self, ctx, seed):
        [a] = await seed({"title": "A", "initialDuration": 60, "duration": 25})

        edited = await activity_service.edit_activity(ctx, a, ActivityEdit(duration_seconds=120))

        assert edited.initial_duration == 120
        assert edited.duration == 120

    async def test_running_activity_cannot_be_edited(self, ctx, seed):
        [a] = await seed(("A", 10))
        await ctx.session.set_running(ctx, True)

        with pytest.raises(InvalidTransitionError):
            await activity_service.edit_activity(ctx, a, ActivityEdit(title="B"))

    async def test_completed_duration_cannot_change(self, ctx, seed):
        [a] = await seed({"title": "A", "initialDuration": 10, "duration": 0, "isCompleted": True})

        with pytest.raises(InvalidTransitionError):
            await activity_service.edit_activity(ctx, a, ActivityEdit(duration_seconds=30))

    async def test_non_positive_duration(self, ctx, seed):
        [a] = await seed(("A", 10))

        with pytest.raises(InvalidDurationError):
            await activity_service.edit_activity(ctx, a, ActivityEdit(duration_seconds=0))

    async def test_unknown_activity(self, ctx, seed):
        await seed(("A", 10))

        with pytest.raises(ActivityNotFoundError):
            await activity_service.edit_activity(ctx, "missing", ActivityEdit(title="B"))


@pytest.mark.unit
class TestResetActivity:
    """Tests for reset_activity."""

    async def test_reset_running_activity(self, ctx, seed, clock):
        [a] = await seed(("A", 60))
        await ctx.session.set_running(ctx, True)
        clock.advance(20)

        reset = await activity_service.reset_activity(ctx, a)

        assert reset.duration == 60
        assert reset.is_running is False
        assert reset.end_time is None
        assert reset.time_spent == 20
        assert ctx.session.state == SessionState.PAUSED

    async def test_reset_completed_moves_to_end_of_queue(self, ctx, seed):
        _, done = await seed(("A", 10), {"title": "Done", "initialDuration": 30, "duration": 0, "isCompleted": True})

        reset = await activity_service.reset_activity(ctx, done)

        assert reset.is_completed is False
        assert reset.duration == 30
        assert [a.title for a in ctx.snapshot.active()] == ["A", "Done"]


@pytest.mark.unit
class TestDeleteActivity:
    """Tests for delete_activity."""

    async def test_delete_closes_gap(self, ctx, seed, patched_db):
        a, b, c = await seed(("A", 10), ("B", 10), ("C", 10))

        await activity_service.delete_activity(ctx, b)

        assert [(x.id, x.order) for x in ctx.snapshot.active()] == [(a, 0), (c, 1)]
        with pytest.raises(KeyError):
            await patched_db.get_record(collection=Constants.ACTIVITIES_COLLECTION, record_id=b)

    async def test_delete_running_pauses_session(self, ctx, seed):
        [a, _] = await seed(("A", 10), ("B", 10))
        await ctx.session.set_running(ctx, True)

        await activity_service.delete_activity(ctx, a)

        assert ctx.session.state == SessionState.PAUSED
        assert ctx.snapshot.running() == []

    async def test_failed_delete_restores_activity(self, ctx, seed, patched_db):
        [a] = await seed(("A", 10))
        patched_db.fail_writes = True

        with pytest.raises(StoreWriteError):
            await activity_service.delete_activity(ctx, a)

        assert ctx.snapshot.get(a) is not None

    async def test_estimates_follow_queue(self, ctx, seed, clock):
        a, b = await seed(("A", 10), ("B", 20))

        await activity_service.delete_activity(ctx, a)

        assert ctx.estimates == {b: clock.now() + timedelta(seconds=20)}
