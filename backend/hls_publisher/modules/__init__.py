"""Pipeline modules.

This package contains the feature modules of the HLS publisher:
- transcoding: source acquisition, probing, quality planning, ffmpeg
  encoding, playlists, cleanup and the pipeline orchestration
- assets: artifact registry, asset store client and publisher
"""
