"""
Streaming response decoding for venice_core.
"""
from .ndjson_reader import (
    DONE_SENTINEL,
    NdjsonDecoder,
    encode_ndjson,
    parse_ndjson_stream,
    strip_sse_prefix,
)
from .consumer import StreamingConsumer
from .helpers import (
    buffer_stream,
    collect_stream,
    count_stream,
    filter_stream,
    map_stream,
    stream_to_list,
    take_stream,
    tap_stream,
    text_only_stream,
)

__all__ = [
    # NDJSON
    "DONE_SENTINEL",
    "NdjsonDecoder",
    "encode_ndjson",
    "parse_ndjson_stream",
    "strip_sse_prefix",
    # Consumer
    "StreamingConsumer",
    # Helpers
    "buffer_stream",
    "collect_stream",
    "count_stream",
    "filter_stream",
    "map_stream",
    "stream_to_list",
    "take_stream",
    "tap_stream",
    "text_only_stream",
]
