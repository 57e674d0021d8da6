"""Collector-facing package boundary.

Stable entry points for pulling release stream data from the release
controller API or a local snapshot.
"""

from collectors.release_streams import (
    fetch_release_streams,
    fetch_release_streams_file,
    fetch_release_streams_http,
)

__all__ = [
    "fetch_release_streams",
    "fetch_release_streams_file",
    "fetch_release_streams_http",
]
