"""Save/load of progression state: codec, storage adapters and the save slot."""

from labyrinth.persistence.codec import DecodeResult, SaveLimits, deserialize, serialize
from labyrinth.persistence.storage import KeyValueStorage, RedisStorage
from labyrinth.persistence.store import SaveStore, save_key

__all__ = [
    "DecodeResult",
    "KeyValueStorage",
    "RedisStorage",
    "SaveLimits",
    "SaveStore",
    "deserialize",
    "save_key",
    "serialize",
]
