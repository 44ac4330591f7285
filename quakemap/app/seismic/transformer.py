"""
Feature transformer — raw feed payload → FeatureCollection.

Accepts whatever the fetcher currently holds: the feed's response dict
(events under "AllThisMonth"), a bare list of records, or nothing at all.
Input order is preserved; there is no sorting here.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from quakemap.app.seismic.models import (
    EMPTY_COLLECTION,
    Feature,
    FeatureCollection,
    SeismicEvent,
)

logger = logging.getLogger(__name__)

# Field of the feed response that enumerates the month's events
EVENTS_FIELD = "AllThisMonth"


def extract_records(payload: Any) -> Sequence[Any]:
    """Pull the event list out of a feed payload; empty for anything else."""
    if payload is None:
        return ()
    if isinstance(payload, Mapping):
        records = payload.get(EVENTS_FIELD)
    else:
        records = payload
    if isinstance(records, (list, tuple)):
        return records
    return ()


def to_feature_collection(payload: Any) -> FeatureCollection:
    """
    Build a FeatureCollection with one Feature per raw event.

    A list holding anything other than mappings / SeismicEvents is treated
    as malformed as a whole and yields the empty collection.
    """
    records = extract_records(payload)
    if not records:
        return EMPTY_COLLECTION

    features = []
    for record in records:
        if isinstance(record, SeismicEvent):
            features.append(Feature(record))
        elif isinstance(record, Mapping):
            features.append(Feature(SeismicEvent.from_record(record)))
        else:
            logger.warning(
                "Malformed seismic payload: record of type %s; showing no events",
                type(record).__name__,
            )
            return EMPTY_COLLECTION

    return FeatureCollection(tuple(features))
