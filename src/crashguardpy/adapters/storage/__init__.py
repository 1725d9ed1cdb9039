"""Storage adapters implementing core ports."""

from crashguardpy.adapters.storage.in_memory import InMemoryLogStorage
from crashguardpy.adapters.storage.ndjson_file import NdjsonFileLogStorage

__all__ = [
    "InMemoryLogStorage",
    "NdjsonFileLogStorage",
]
