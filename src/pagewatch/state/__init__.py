from .file_store import FileThrottleStore
from .store import ThrottleStore
from .throttle import ThrottleGate, throttle_key

__all__ = [
    "FileThrottleStore",
    "ThrottleGate",
    "ThrottleStore",
    "throttle_key",
]
