"""
Durable retry buffer.
"""

from .retry_buffer import STATUS_FAILED, STATUS_PENDING, BufferEntry, FlushSummary, RetryBuffer

__all__ = [
    'BufferEntry',
    'FlushSummary',
    'RetryBuffer',
    'STATUS_FAILED',
    'STATUS_PENDING',
]
