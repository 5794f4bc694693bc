"""
Shared utilities for the template agent.

- llm_client.py: Instructor-wrapped OpenAI client with retries and cancellation
- cancellation.py: cooperative cancellation token
- status.py: thread-safe status-line sink
- ids.py: injectable identifier allocators
- file_io.py: template JSON reading/writing
- logging_config.py: console/JSON logging and stage loggers
"""

__all__ = [
    "llm_client",
    "cancellation",
    "status",
    "ids",
    "file_io",
    "logging_config",
]
