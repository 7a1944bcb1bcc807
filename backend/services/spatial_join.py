"""
Spatial join of seed features against a target feature layer.

Every seed geometry drives one "intersects" query against the target. Queries
run concurrently (bounded by a semaphore) and their batches are concatenated
in seed-set order, then seed order, whatever order they complete in. That
order decides which duplicate survives deduplication downstream.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Iterable, List, Optional, Sequence, TypeVar

from domain.errors import LoadFailure
from domain.models import FeatureRecord, FeatureSourceHandle, SeedSet
from services.feature_source import FeatureSourceClient
from settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def gather_fail_fast(aws: Iterable[Awaitable[T]]) -> List[T]:
    """
    Await all of aws and return their results in order.

    Unlike asyncio.gather, the first error cancels everything still pending
    before it is raised, so queued queries are never sent. When several tasks
    have failed by then, the earliest one in argument order is raised.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    if not tasks:
        return []
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        raise

    if pending:
        for task in pending:
            task.cancel()
        await asyncio.wait(pending)

    first_error: Optional[BaseException] = None
    for task in tasks:
        if task in pending or task.cancelled():
            continue
        error = task.exception()
        if error is not None and first_error is None:
            first_error = error
    if first_error is not None:
        raise first_error
    return [task.result() for task in tasks]


async def _query_seed(
    client: FeatureSourceClient,
    target: FeatureSourceHandle,
    seed: FeatureRecord,
    where: Optional[str],
    semaphore: asyncio.Semaphore,
) -> List[FeatureRecord]:
    if seed.geometry is None or seed.geometry.is_empty:
        return []
    async with semaphore:
        return await client.query_features(
            target,
            where=where,
            geometry=seed.geometry,
            spatial_relationship="intersects",
            out_fields=("*",),
            return_geometry=True,
        )


async def join(
    client: FeatureSourceClient,
    seed_sets: Sequence[SeedSet],
    target: FeatureSourceHandle,
    where: Optional[str] = None,
    max_concurrency: Optional[int] = None,
) -> List[FeatureRecord]:
    """
    Return every target feature intersecting any seed, in seed order.

    Duplicates are kept; see services.dedup. Raises LoadFailure if any single
    query fails, in which case nothing is returned.
    """
    semaphore = asyncio.Semaphore(max_concurrency or settings.MAX_CONCURRENT_QUERIES)

    per_set_tasks = []
    for seed_set in seed_sets:
        if not seed_set.features:
            logger.warning("Seed set %s has no features; skipping", seed_set.name)
        per_set_tasks.append(
            [_query_seed(client, target, seed, where, semaphore) for seed in seed_set.features]
        )

    flat = [coro for tasks in per_set_tasks for coro in tasks]
    try:
        batches = await gather_fail_fast(flat)
    except LoadFailure as exc:
        logger.warning("Spatial join against %s aborted: %s", target.name, exc)
        raise
    except Exception as exc:
        logger.warning("Spatial join against %s aborted: %s", target.name, exc)
        raise LoadFailure(target.name, f"intersect query failed: {exc}") from exc

    joined: List[FeatureRecord] = []
    pos = 0
    for seed_set, tasks in zip(seed_sets, per_set_tasks):
        set_batches = batches[pos:pos + len(tasks)]
        pos += len(tasks)
        count = sum(len(b) for b in set_batches)
        logger.info(
            "Seed set %s: %d seeds matched %d %s features",
            seed_set.name,
            len(tasks),
            count,
            target.name,
        )
        for batch in set_batches:
            joined.extend(batch)
    return joined
