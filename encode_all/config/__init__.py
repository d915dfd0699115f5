"""
Configuration Package for encode-all.

This package centralizes all the static configuration settings for the application:
- `common.py`: logging format, the user YAML configuration, batch settings and job states.
- `encoding.py`: codec sentinels, accepted request values, flag tables and defaults
  used when building ffmpeg command lines.
"""
