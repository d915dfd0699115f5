"""
This package contains the batch pipeline, which runs many encoding requests
through one supervisor with bounded parallelism and a retry limit.
"""
