"""Tests for zonewalker.core.walker."""

from __future__ import annotations

import asyncio
from typing import List
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import FakeSignedZone, make_reply, no_wait_policy

from zonewalker.core.errors import InvalidNameError, ResolverError
from zonewalker.core.names import normalize
from zonewalker.core.rate_limiter import StepRateLimiter
from zonewalker.core.retry import RetryPolicy
from zonewalker.core.walker import EndReason, WalkState, ZoneWalker, start_point


def _walker(resolver, zone: str = "example.", **kwargs) -> ZoneWalker:
    kwargs.setdefault("rate_limiter", StepRateLimiter(rps=0))
    kwargs.setdefault("retry_policy", no_wait_policy())
    return ZoneWalker(resolver, zone, **kwargs)


async def _collect(walker: ZoneWalker) -> List[str]:
    return [name.to_text(omit_final_dot=True) async for name in walker.walk()]


# --- full walks ---


@pytest.mark.asyncio
async def test_walks_whole_zone_in_canonical_order(zone: FakeSignedZone):
    walker = _walker(zone)
    names = await _collect(walker)
    assert names == zone.expected()
    assert walker.reason is EndReason.WRAPPED
    assert walker.state is WalkState.ENDED


@pytest.mark.asyncio
async def test_first_probe_is_first_child_of_apex(zone: FakeSignedZone):
    await _walker(zone).step()
    assert zone.queries == [normalize("\\001.example.")]


@pytest.mark.asyncio
async def test_counts_steps_and_names(zone: FakeSignedZone):
    walker = _walker(zone)
    await _collect(walker)
    assert walker.names_found == len(zone.expected())
    # One extra probe discovers the wrap
    assert walker.cursor.steps == len(zone.expected()) + 1


@pytest.mark.asyncio
async def test_mixed_case_owner_is_emitted_lower_case(zone: FakeSignedZone):
    names = await _collect(_walker(zone))
    assert "mail.example" in names
    assert "Mail.example" not in names


@pytest.mark.asyncio
async def test_empty_zone_wraps_immediately():
    walker = _walker(FakeSignedZone("example.", []))
    assert await _collect(walker) == []
    assert walker.reason is EndReason.WRAPPED


@pytest.mark.asyncio
async def test_step_after_end_is_noop(zone: FakeSignedZone):
    walker = _walker(zone)
    await _collect(walker)
    queries = len(zone.queries)
    assert await walker.step() is None
    assert len(zone.queries) == queries


# --- resume and bounds ---


@pytest.mark.asyncio
async def test_resume_from_start(zone: FakeSignedZone):
    names = await _collect(_walker(zone, start="i.example."))
    assert names == ["mail.example", "www.example", "z.example", "zz.example", "\\255.example"]


@pytest.mark.asyncio
async def test_upper_bound_is_exclusive(zone: FakeSignedZone):
    walker = _walker(zone, upper_bound="i.example.")
    names = await _collect(walker)
    assert names == ["-foo.example", "0.example", "0a.example", "9zz.example", "_dmarc.example", "a.example"]
    assert walker.reason is EndReason.BOUNDARY


@pytest.mark.asyncio
async def test_lower_bound_is_inclusive(zone: FakeSignedZone):
    walker = _walker(zone, start="i.example.", lower_bound="i.example.", upper_bound="w.example.")
    names = await _collect(walker)
    assert names == ["i.example", "mail.example"]
    assert walker.reason is EndReason.BOUNDARY


@pytest.mark.asyncio
async def test_lower_bound_first_probe_is_predecessor(zone: FakeSignedZone):
    walker = _walker(zone, lower_bound="i.example.")
    assert walker.cursor.current == normalize("i.example.")
    await walker.step()
    assert zone.queries[0].labels[0] == b"h" + b"\xff" * 62


@pytest.mark.asyncio
async def test_lower_bound_missing_name_starts_at_next(zone: FakeSignedZone):
    names = await _collect(_walker(zone, lower_bound="b.example.", upper_bound="j.example."))
    assert names == ["i.example"]


@pytest.mark.asyncio
async def test_names_below_lower_bound_are_not_emitted():
    fake = FakeSignedZone("example.", ["a.example.", "h\\255.example.", "i.example."])
    walker = _walker(fake, start="example.", lower_bound="i.example.")
    assert await _collect(walker) == ["i.example"]
    assert walker.names_found == 1


@pytest.mark.asyncio
async def test_chain_leaving_zone_stops_walk():
    fake = FakeSignedZone(
        "example.",
        ["sub.example.", "a.sub.example.", "b.example.", "t.example."],
    )
    walker = _walker(fake, zone="sub.example.")
    assert await _collect(walker) == ["a.sub.example"]
    assert walker.reason is EndReason.OUTSIDE_ZONE


# --- failures ---


@pytest.mark.asyncio
async def test_insecure_zone_ends_walk():
    walker = _walker(FakeSignedZone("example.", ["a.example."], secure=False))
    assert await _collect(walker) == []
    assert walker.reason is EndReason.UNSECURED


@pytest.mark.asyncio
async def test_exhausted_name_space_ends_walk():
    resolver = MagicMock()
    resolver.query = AsyncMock()
    walker = _walker(resolver, start="\\255" * 63 + ".example.")
    assert await walker.step() is None
    assert walker.reason is EndReason.EXHAUSTED
    resolver.query.assert_not_awaited()


@pytest.mark.asyncio
async def test_transient_failures_are_retried_in_place():
    resolver = MagicMock()
    resolver.query = AsyncMock(
        side_effect=[
            ResolverError("timeout"),
            ResolverError("timeout"),
            [make_reply(("example.", "a.example."))],
        ]
    )
    walker = _walker(resolver)
    assert await walker.step() == normalize("a.example.")
    # Every attempt asked about the same probe point
    points = {c.args[0] for c in resolver.query.await_args_list}
    assert points == {normalize("\\001.example.")}
    assert walker.cursor.failure_delay == 0.0


@pytest.mark.asyncio
async def test_failure_delay_tracks_backoff():
    resolver = MagicMock()
    resolver.query = AsyncMock(
        side_effect=[ResolverError("a"), ResolverError("b"), [make_reply(("example.", "a.example."))]]
    )
    seen: List[float] = []
    walker = None

    async def _sleep(delay: float) -> None:
        seen.append(walker.cursor.failure_delay)

    policy = RetryPolicy(initial_delay=1.0, max_delay=60.0, backoff_factor=2.0, sleep=_sleep)
    walker = _walker(resolver, retry_policy=policy)
    await walker.step()
    assert seen == [1.0, 2.0]
    assert walker.cursor.failure_delay == 0.0


@pytest.mark.asyncio
async def test_shutdown_while_failing_cancels_walk():
    shutdown = asyncio.Event()
    shutdown.set()
    resolver = MagicMock()
    resolver.query = AsyncMock(side_effect=ResolverError("down"))
    walker = _walker(resolver, retry_policy=no_wait_policy(shutdown))
    assert await walker.step() is None
    assert walker.reason is EndReason.CANCELLED


# --- run ---


@pytest.mark.asyncio
async def test_run_reports_names_without_final_dot(zone: FakeSignedZone):
    seen: List[str] = []
    outcome = await _walker(zone, index=3).run(seen.append)
    assert seen == zone.expected()
    assert outcome.partition == 3
    assert outcome.names_found == len(seen)
    assert outcome.steps == len(seen) + 1
    assert outcome.reason is EndReason.WRAPPED
    assert outcome.duration >= 0.0


@pytest.mark.asyncio
async def test_run_cancellation_marks_walker():
    blocked = asyncio.Event()

    async def _hang(name, record_type="A"):
        blocked.set()
        await asyncio.Event().wait()

    resolver = MagicMock()
    resolver.query = _hang
    walker = _walker(resolver)
    task = asyncio.create_task(walker.run(lambda name: None))
    await blocked.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert walker.reason is EndReason.CANCELLED
    assert walker.state is WalkState.ENDED


# --- start_point ---


def test_start_point_defaults_to_apex():
    assert start_point("Example.", None) == normalize("example.")


def test_start_point_is_lower_cased():
    assert start_point("example.", "WWW.Example.").to_text() == "www.example."


def test_start_point_outside_zone():
    with pytest.raises(InvalidNameError):
        start_point("example.", "www.example.org.")
