"""
Coastal cities pipeline: seed layers -> spatial join -> dedup.

Each call is an independent run with its own DedupIndex, so re-running the
pipeline never remembers cities from a previous run.
"""
from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from domain.models import DedupIndex, FeatureRecord, SeedSet, SourceDescriptor
from services.dedup import dedup
from services.feature_source import FeatureSourceClient
from services.spatial_join import gather_fail_fast, join
from settings import settings

logger = logging.getLogger(__name__)


def default_seed_sources() -> List[SourceDescriptor]:
    """Access points first, then the coastal buffer layer when configured."""
    sources = [
        SourceDescriptor(
            name="access_points",
            url=settings.ACCESS_POINTS_URL,
            where=settings.ACCESS_POINTS_WHERE,
        )
    ]
    if settings.COASTAL_BUFFER_URL:
        sources.append(
            SourceDescriptor(
                name="coastal_buffer",
                url=settings.COASTAL_BUFFER_URL,
                where=settings.COASTAL_BUFFER_WHERE,
            )
        )
    else:
        logger.info("COASTAL_BUFFER_URL not set; joining on access points only")
    return sources


def default_cities_source() -> SourceDescriptor:
    return SourceDescriptor(name="cities", url=settings.CITIES_URL)


async def build_coastal_cities(
    client: FeatureSourceClient,
    seed_sources: Optional[Sequence[SourceDescriptor]] = None,
    cities_source: Optional[SourceDescriptor] = None,
    cities_where: Optional[str] = None,
    key_field: Optional[str] = None,
) -> List[FeatureRecord]:
    """
    Run one pipeline pass and return the deduplicated city features.

    Seed sources are joined in the order given; earlier sources win ties.
    Any LoadFailure while loading layers, fetching seeds or joining aborts
    the run and propagates to the caller.
    """
    seed_sources = list(seed_sources) if seed_sources is not None else default_seed_sources()
    cities_source = cities_source or default_cities_source()
    if cities_where is None:
        cities_where = settings.CITIES_WHERE
    key_field = key_field or settings.CITY_NAME_FIELD

    cities, *seed_handles = await client.load_many([cities_source, *seed_sources])

    seed_batches = await gather_fail_fast(client.query_features(h) for h in seed_handles)
    seed_sets = [
        SeedSet(name=handle.name, features=tuple(batch))
        for handle, batch in zip(seed_handles, seed_batches)
    ]
    for seed_set in seed_sets:
        logger.info("Fetched %d seed features from %s", len(seed_set), seed_set.name)

    joined = await join(client, seed_sets, cities, where=cities_where)
    index = DedupIndex()
    unique = dedup(joined, index, key_field=key_field)
    logger.info(
        "Coastal cities: %d intersecting features, %d unique cities", len(joined), len(unique)
    )
    return unique
