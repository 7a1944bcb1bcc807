from __future__ import annotations

from typing import Iterable, List, Optional

from domain.models import CITY_NAME_FIELD, DedupIndex, FeatureRecord


def dedup(
    features: Iterable[FeatureRecord],
    index: Optional[DedupIndex] = None,
    key_field: str = CITY_NAME_FIELD,
) -> List[FeatureRecord]:
    """
    Keep the first feature seen for each city name, preserving input order.

    Callers decide priority purely by the order they concatenate sources in.
    A missing key counts as the identity None, so at most one unnamed feature
    survives. Passing the same index across calls extends a single run.
    """
    seen = index if index is not None else DedupIndex()
    kept: List[FeatureRecord] = []
    for feature in features:
        key = feature.attributes.get(key_field)
        if key in seen:
            continue
        seen.add(key)
        kept.append(feature)
    return kept
