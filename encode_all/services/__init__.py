"""
Services Package for encode-all.

- **Argument builder**: turns an `EncodingRequest` into ffmpeg argument lists.
- **Log parser**: derives duration and progress from ffmpeg's stderr.
- **Process supervisor**: runs one ffmpeg invocation and reports its outcome.
- **Job registry** (`EncodingSupervisor`): starts, tracks and cancels jobs.
- **Events**: the publish/subscribe boundary towards callers.
- **Power**: reference-counted sleep inhibition and progress indicators.
"""
