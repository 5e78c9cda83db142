"""
Storage synchronization for Flowboard
"""
from .write_buffer import WriteCoalescingBuffer
from .persistence import PersistenceGateway, PendingOperation

__all__ = ["WriteCoalescingBuffer", "PersistenceGateway", "PendingOperation"]
