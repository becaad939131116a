"""Rich-text facet walking.

Order follows the source (facet order, then feature order) and duplicates are
kept.
"""

from typing import Callable, Iterator, List

from .types import Feature, PostRecord


def iter_features(record: PostRecord) -> Iterator[Feature]:
    for facet in record.facets or []:
        yield from facet.features


def _collect(record: PostRecord, wanted: Callable[[Feature], bool], value: Callable[[Feature], str]) -> List[str]:
    return [value(feature) for feature in iter_features(record) if wanted(feature)]


def extract_tags(record: PostRecord) -> List[str]:
    return _collect(record, lambda f: f.is_tag, lambda f: f.tag)


def extract_mentions(record: PostRecord) -> List[str]:
    return _collect(record, lambda f: f.is_mention, lambda f: f.did)
