"""
seismic — seismic feed access and data shaping.

Sub-modules:
    models       — SeismicEvent, Feature, FeatureCollection, QueryIdentity
    time_format  — feed timestamp parsing, relative time, month labels
    transformer  — raw payload → FeatureCollection
    fetcher      — cache-aware HTTP client for the feed
"""
