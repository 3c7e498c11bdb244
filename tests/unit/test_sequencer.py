"""Unit tests for completion and auto-advance."""

from datetime import timedelta

import pytest

from timeblock.core.config import Constants
from timeblock.core.db_client import DatabaseError
from timeblock.domain.create_models import ActivityCreate
from timeblock.services import activity_service, sequencer, timer_engine
from timeblock.services.notification_service import NotificationPermission
from timeblock.services.sequencer import find_next_task
from timeblock.services.session_controller import SessionState


async def _stored(db, activity_id: str) -> dict:
    return await db.get_record(collection=Constants.ACTIVITIES_COLLECTION, record_id=activity_id)


async def _tick(ctx, clock, times: int = 1) -> None:
    for _ in range(times):
        clock.advance(1)
        await timer_engine.handle_tick(ctx)


@pytest.mark.unit
class TestCompletion:
    """Tests for sequencer.complete driven by the tick."""

    async def test_single_activity_runs_to_completion(self, ctx, seed, clock, patched_db):
        """Five ticks of a five second activity complete it."""
        [a] = await seed(("A", 5))
        await ctx.session.set_running(ctx, True)

        await _tick(ctx, clock, 4)
        assert ctx.snapshot.get(a).is_completed is False

        await _tick(ctx, clock)

        record = await _stored(patched_db, a)
        assert record["isCompleted"] is True
        assert record["isRunning"] is False
        assert record["timeSpent"] == 5
        assert record["duration"] == 0
        assert record["endTime"] is None

    async def test_next_activity_starts_automatically(self, ctx, seed, clock, sink):
        a, b = await seed(("A", 5), ("B", 5))
        await ctx.session.set_running(ctx, True)

        await _tick(ctx, clock, 5)

        next_task = ctx.snapshot.get(b)
        assert ctx.snapshot.get(a).is_completed
        assert next_task.is_running is True
        assert next_task.end_time == clock.now() + timedelta(seconds=5)
        assert ctx.session.state == SessionState.RUNNING

        await _tick(ctx, clock, 5)

        assert ctx.snapshot.get(b).is_completed
        assert ctx.session.state == SessionState.PAUSED
        await _tick(ctx, clock, 3)
        assert [title for title, _ in sink.notifications].count("All done!") == 1
        assert [title for title, _ in sink.notifications].count("Time's up!") == 2

    async def test_completion_while_paused_session_does_not_advance(self, ctx, seed, clock):
        """An activity played on its own completes but the next one stays paused."""
        a, b = await seed(("A", 5), ("B", 5))
        await ctx.session.toggle_activity(ctx, a)
        ctx.session.state = SessionState.PAUSED

        clock.advance(5)
        result = await sequencer.complete(ctx, ctx.snapshot.get(a), session_was_running=False)

        assert result.next_task.id == b
        assert result.next_started is False
        assert ctx.snapshot.get(b).is_running is False

    async def test_completing_twice_is_idempotent(self, ctx, seed, clock, patched_db):
        a, b = await seed(("A", 5), ("B", 5))
        await ctx.session.set_running(ctx, True)
        clock.advance(5)
        running = ctx.snapshot.get(a)

        first = await sequencer.complete(ctx, running, session_was_running=True)
        second = await sequencer.complete(ctx, running, session_was_running=True)

        assert first is not None
        assert first.time_spent_added == 5
        assert second is None
        assert (await _stored(patched_db, a))["timeSpent"] == 5
        assert ctx.snapshot.get(b).end_time == clock.now() + timedelta(seconds=5)

    async def test_time_spent_accumulates_partial_runs(self, ctx, seed, clock):
        """Time spent is what was consumed of the initial duration."""
        [a] = await seed({"title": "A", "initialDuration": 10, "duration": 4, "timeSpent": 3})
        await ctx.session.set_running(ctx, True)

        clock.advance(4)
        result = await sequencer.complete(ctx, ctx.snapshot.get(a), session_was_running=True)

        assert result.time_spent_added == 10
        assert result.completed.time_spent == 13
        assert result.all_complete is True

    async def test_failed_advance_keeps_completion_and_pauses(self, ctx, seed, clock, patched_db):
        a, b = await seed(("A", 5), ("B", 5))
        await ctx.session.set_running(ctx, True)
        patched_db.fail_update_ids = {b}

        await _tick(ctx, clock, 5)

        assert (await _stored(patched_db, a))["isCompleted"] is True
        assert ctx.snapshot.get(b).is_running is False
        assert ctx.session.state == SessionState.PAUSED
        assert ctx.errors == ["Could not update the activity state."]

    async def test_completing_a_middle_activity_keeps_orders_contiguous(self, ctx, seed, clock, sync):
        """The active list closes the gap and the completed list grows at its end."""
        a, b, c = await seed(("A", 5), ("B", 5), ("C", 5))
        await ctx.session.toggle_activity(ctx, b)
        clock.advance(5)
        await timer_engine.handle_tick(ctx)

        d = await activity_service.add_activity(ctx, ActivityCreate(title="D", seconds=5))
        await sync()

        assert [(x.id, x.order) for x in ctx.snapshot.active()] == [(a, 0), (c, 1), (d, 2)]
        assert [(x.id, x.order) for x in ctx.snapshot.completed()] == [(b, 0)]
        assert ctx.snapshot.get(c).is_running

    async def test_completed_list_follows_completion_order(self, ctx, seed, clock, sync, patched_db):
        a, b = await seed(("A", 5), ("B", 5))
        await ctx.session.set_running(ctx, True)

        await _tick(ctx, clock, 10)
        await sync()

        assert [(x.id, x.order) for x in ctx.snapshot.completed()] == [(a, 0), (b, 1)]
        assert (await _stored(patched_db, b))["order"] == 1

    async def test_failed_renumber_keeps_completion_and_advances(self, ctx, seed, clock, patched_db, monkeypatch):
        a, b = await seed(("A", 5), ("B", 5))
        await ctx.session.set_running(ctx, True)

        async def _fail_batch(**kwargs):
            raise DatabaseError("Simulated batch failure")

        monkeypatch.setattr("timeblock.core.db_client.batch_update_records", _fail_batch)
        await _tick(ctx, clock, 5)

        assert (await _stored(patched_db, a))["isCompleted"] is True
        assert ctx.snapshot.get(b).is_running
        assert ctx.errors == ["Could not save the new order."]

    async def test_user_pause_during_completion_stops_advance(self, ctx, seed, clock, monkeypatch):
        """A pause that lands while the completion is being written is honoured."""
        a, b = await seed(("A", 5), ("B", 5))
        await ctx.session.set_running(ctx, True)
        clock.advance(5)
        original_update = ctx.store.update

        async def _update_then_pause(scope, activity_id, patch):
            revision = await original_update(scope, activity_id, patch)
            if activity_id == a:
                ctx.session.state = SessionState.PAUSED
            return revision

        monkeypatch.setattr(ctx.store, "update", _update_then_pause)
        result = await timer_engine.handle_tick(ctx)

        assert result.completed.id == a
        assert result.next_started is False
        assert ctx.snapshot.get(b).is_running is False


    async def test_completion_cues(self, ctx, seed, clock, sink, audio):
        await seed(("Focus", 5), ("Break", 5))
        await ctx.session.set_running(ctx, True)

        await _tick(ctx, clock, 5)

        assert sink.notifications == [("Time's up!", '"Focus" is complete.')]
        assert audio.plays == 1
        assert sink.permission_requests == 1

    async def test_denied_permission_still_plays_audio(self, ctx, seed, clock, sink, audio):
        sink.permission = NotificationPermission.DENIED
        await seed(("Focus", 5), ("Break", 5))
        await ctx.session.set_running(ctx, True)

        await _tick(ctx, clock, 5)

        assert sink.notifications == []
        assert audio.plays == 1


@pytest.mark.unit
class TestFindNextTask:
    """Tests for find_next_task."""

    async def test_skips_lower_orders(self, ctx, seed):
        """Only activities ordered after the completed one are candidates."""
        a, b, c = await seed(("A", 5), ("B", 5), ("C", 5))
        activities = ctx.snapshot.activities()

        assert find_next_task(activities, ctx.snapshot.get(b)).id == c
        assert find_next_task(activities, ctx.snapshot.get(c)) is None
        assert find_next_task(activities, ctx.snapshot.get(a)).id == b

    async def test_ignores_completed(self, ctx, seed):
        a, _, c = await seed(
            ("A", 5),
            {"title": "B", "initialDuration": 5, "duration": 0, "isCompleted": True, "order": 1},
            {"title": "C", "initialDuration": 5, "order": 2},
        )

        assert find_next_task(ctx.snapshot.activities(), ctx.snapshot.get(a)).id == c
