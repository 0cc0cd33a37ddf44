"""HLS Publisher.

Transcodes a single source video into an HLS adaptive bitrate package and
publishes every produced file into a content-addressed asset store.

Modules:
    - core: Configuration, logging, tracing, storage resolution, Celery setup
    - modules.transcoding: Probing, quality planning, encoding, playlists, pipeline
    - modules.assets: Asset store client and artifact publishing
"""

__version__ = "0.1.0"
