from .json_file import JsonRegistrationStore
from .memory import MemoryRegistrationStore

__all__ = ["JsonRegistrationStore", "MemoryRegistrationStore"]
