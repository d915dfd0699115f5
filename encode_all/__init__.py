"""
encode-all: batch video transcoding by supervising ffmpeg processes.

The package is layered the same way throughout:

- `config`: static settings and the optional user YAML configuration.
- `domain`: the encoding request, the job record and the exception types.
- `services`: argument building, log parsing, process supervision, the job
  registry, events and power management.
- `pipeline`: running many requests as a batch.
- `utils`: helpers around the ffmpeg toolchain and formatting.

The most commonly used classes are re-exported here.
"""
from .domain.request import EncodingRequest
from .services.events import EncodingEvents
from .services.job_registry import EncodingSupervisor, JobResult

__all__ = ["EncodingEvents", "EncodingRequest", "EncodingSupervisor", "JobResult"]
