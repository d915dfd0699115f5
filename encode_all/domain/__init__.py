"""
This package contains the core domain models of encode-all.

Modules:
    exceptions.py: Custom exception types, rooted at `EncodeAllException`.
    request.py: `EncodingRequest`, the immutable description of one job, and
                `CodecInfo`, the capabilities resolved from a codec name.
    job.py: `Job`, the mutable record the supervisor keeps while a job is
            active, and the job state machine.
"""
