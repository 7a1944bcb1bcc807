import asyncio

import pytest
from shapely.geometry import Point, box

from domain.errors import LoadFailure
from domain.models import (
    CITY_NAME_FIELD,
    FeatureRecord,
    FeatureSourceHandle,
    SeedSet,
    SourceDescriptor,
)
from services.coastal_cities import build_coastal_cities
from services.spatial_join import join


def _city(name, source=""):
    return FeatureRecord(geometry=box(0, 0, 1, 1), attributes={CITY_NAME_FIELD: name, "via": source})


def _handle(name):
    return FeatureSourceHandle(descriptor=SourceDescriptor(name=name, url=f"https://example.test/{name}/0"))


class FakeFeatureClient:
    """Answers intersect queries from a table keyed by seed geometry WKT."""

    def __init__(self, by_seed=None, delays=None, seeds_by_source=None, fail_on=None, broken_sources=None):
        self.by_seed = by_seed or {}
        self.delays = delays or {}
        self.seeds_by_source = seeds_by_source or {}
        self.fail_on = fail_on or set()
        self.broken_sources = broken_sources or set()
        self.queries = []
        self.loaded = []

    async def load(self, descriptor):
        if descriptor.name in self.fail_on:
            raise LoadFailure(descriptor.name, "layer unavailable")
        self.loaded.append(descriptor.name)
        return FeatureSourceHandle(descriptor=descriptor, layer_name=descriptor.name)

    async def load_many(self, descriptors):
        return list(await asyncio.gather(*(self.load(d) for d in descriptors)))

    async def query_features(
        self,
        handle,
        where=None,
        geometry=None,
        spatial_relationship="intersects",
        out_fields=("*",),
        return_geometry=True,
    ):
        self.queries.append((handle.name, where, geometry, spatial_relationship))
        if geometry is None:
            if handle.name in self.broken_sources:
                raise LoadFailure(handle.name, "query failed")
            return list(self.seeds_by_source.get(handle.name, []))
        key = geometry.wkt
        await asyncio.sleep(self.delays.get(key, 0))
        if key in self.fail_on:
            raise LoadFailure(handle.name, "query failed")
        return list(self.by_seed.get(key, []))


def _seed(x, y=0.0):
    return FeatureRecord(geometry=Point(x, y), attributes={})


def test_join_preserves_seed_order_regardless_of_completion():
    s1, s2, s3 = _seed(1), _seed(2), _seed(3)
    client = FakeFeatureClient(
        by_seed={
            s1.geometry.wkt: [_city("Malibu")],
            s2.geometry.wkt: [_city("Oxnard")],
            s3.geometry.wkt: [_city("Ventura")],
        },
        # first seed completes last
        delays={s1.geometry.wkt: 0.03, s2.geometry.wkt: 0.01},
    )
    seed_sets = [SeedSet("points", (s1, s2)), SeedSet("buffers", (s3,))]

    joined = asyncio.run(join(client, seed_sets, _handle("cities")))

    assert [f.attributes[CITY_NAME_FIELD] for f in joined] == ["Malibu", "Oxnard", "Ventura"]


def test_join_sends_intersects_query_with_filter():
    seed = _seed(1)
    client = FakeFeatureClient(by_seed={seed.geometry.wkt: [_city("Malibu")]})

    asyncio.run(join(client, [SeedSet("points", (seed,))], _handle("cities"), where="POP > 0"))

    name, where, geometry, relationship = client.queries[0]
    assert name == "cities"
    assert where == "POP > 0"
    assert geometry.equals(seed.geometry)
    assert relationship == "intersects"


def test_join_empty_seed_set_continues_with_others():
    seed = _seed(5)
    client = FakeFeatureClient(by_seed={seed.geometry.wkt: [_city("Oxnard")]})
    joined = asyncio.run(
        join(client, [SeedSet("empty", ()), SeedSet("points", (seed,))], _handle("cities"))
    )
    assert [f.attributes[CITY_NAME_FIELD] for f in joined] == ["Oxnard"]


def test_join_keeps_duplicates_for_dedup():
    s1, s2 = _seed(1), _seed(2)
    client = FakeFeatureClient(
        by_seed={s1.geometry.wkt: [_city("Malibu")], s2.geometry.wkt: [_city("Malibu")]}
    )
    joined = asyncio.run(join(client, [SeedSet("points", (s1, s2))], _handle("cities")))
    assert len(joined) == 2


def test_join_single_failure_aborts_whole_join():
    s1, s2 = _seed(1), _seed(2)
    client = FakeFeatureClient(
        by_seed={s1.geometry.wkt: [_city("Malibu")]},
        fail_on={s2.geometry.wkt},
    )
    with pytest.raises(LoadFailure):
        asyncio.run(join(client, [SeedSet("points", (s1, s2))], _handle("cities")))


def test_join_failure_cancels_queued_queries():
    seeds = [_seed(i) for i in range(20)]
    slow = {s.geometry.wkt: 0.05 for s in seeds[1:]}
    client = FakeFeatureClient(fail_on={seeds[0].geometry.wkt}, delays=slow)

    with pytest.raises(LoadFailure):
        asyncio.run(
            join(client, [SeedSet("points", tuple(seeds))], _handle("cities"), max_concurrency=2)
        )

    # only the queries already holding a slot went out
    assert len(client.queries) <= 3


def test_join_wraps_unexpected_errors():
    seed = _seed(1)

    class BrokenClient(FakeFeatureClient):
        async def query_features(self, handle, where=None, geometry=None, **kwargs):
            raise RuntimeError("socket closed")

    with pytest.raises(LoadFailure) as excinfo:
        asyncio.run(join(BrokenClient(), [SeedSet("points", (seed,))], _handle("cities")))
    assert excinfo.value.source == "cities"


def test_join_respects_concurrency_limit():
    seeds = [_seed(i) for i in range(6)]
    active = {"now": 0, "peak": 0}

    class CountingClient(FakeFeatureClient):
        async def query_features(self, handle, where=None, geometry=None, **kwargs):
            active["now"] += 1
            active["peak"] = max(active["peak"], active["now"])
            await asyncio.sleep(0.005)
            active["now"] -= 1
            return []

    asyncio.run(join(CountingClient(), [SeedSet("points", tuple(seeds))], _handle("cities"), max_concurrency=2))
    assert active["peak"] <= 2


def test_pipeline_two_sources_dedups_in_combined_order():
    point_seed = FeatureRecord(geometry=box(0, 0, 1, 1), attributes={"id": 1})
    buffer_seed = FeatureRecord(geometry=box(2, 2, 3, 3), attributes={"id": 2})
    client = FakeFeatureClient(
        seeds_by_source={"access_points": [point_seed], "coastal_buffer": [buffer_seed]},
        by_seed={
            point_seed.geometry.wkt: [_city("Malibu", "points")],
            buffer_seed.geometry.wkt: [_city("Malibu", "buffer"), _city("Oxnard", "buffer")],
        },
    )
    sources = [
        SourceDescriptor("access_points", "https://example.test/points/0"),
        SourceDescriptor("coastal_buffer", "https://example.test/buffer/0"),
    ]

    cities = asyncio.run(
        build_coastal_cities(
            client,
            seed_sources=sources,
            cities_source=SourceDescriptor("cities", "https://example.test/cities/2"),
            cities_where="",
        )
    )

    assert [c.attributes[CITY_NAME_FIELD] for c in cities] == ["Malibu", "Oxnard"]
    assert cities[0].attributes["via"] == "points"
    assert set(client.loaded) == {"cities", "access_points", "coastal_buffer"}


def test_pipeline_runs_are_independent():
    seed = FeatureRecord(geometry=box(0, 0, 1, 1), attributes={})
    client = FakeFeatureClient(
        seeds_by_source={"access_points": [seed]},
        by_seed={seed.geometry.wkt: [_city("Malibu")]},
    )
    kwargs = dict(
        seed_sources=[SourceDescriptor("access_points", "https://example.test/points/0")],
        cities_source=SourceDescriptor("cities", "https://example.test/cities/2"),
        cities_where="",
    )
    first = asyncio.run(build_coastal_cities(client, **kwargs))
    second = asyncio.run(build_coastal_cities(client, **kwargs))
    assert len(first) == 1
    assert len(second) == 1


def test_pipeline_load_failure_aborts():
    client = FakeFeatureClient(fail_on={"cities"})
    with pytest.raises(LoadFailure):
        asyncio.run(
            build_coastal_cities(
                client,
                seed_sources=[SourceDescriptor("access_points", "https://example.test/points/0")],
                cities_source=SourceDescriptor("cities", "https://example.test/cities/2"),
            )
        )
    assert not [q for q in client.queries if q[2] is not None]


def test_pipeline_seed_query_failure_aborts_before_join():
    client = FakeFeatureClient(
        seeds_by_source={"access_points": [FeatureRecord(geometry=box(0, 0, 1, 1), attributes={})]},
        broken_sources={"coastal_buffer"},
    )
    with pytest.raises(LoadFailure) as excinfo:
        asyncio.run(
            build_coastal_cities(
                client,
                seed_sources=[
                    SourceDescriptor("access_points", "https://example.test/points/0"),
                    SourceDescriptor("coastal_buffer", "https://example.test/buffer/0"),
                ],
                cities_source=SourceDescriptor("cities", "https://example.test/cities/2"),
            )
        )
    assert excinfo.value.source == "coastal_buffer"
    assert not [q for q in client.queries if q[2] is not None]
