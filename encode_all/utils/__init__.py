"""
Utilities Package for encode-all.

Modules:
    - ffmpeg_utils.py: toolchain checks, ffprobe inspection, command display and
      two-pass statistics cleanup.
    - format_utils.py: ffmpeg timestamp parsing and duration formatting.
"""
