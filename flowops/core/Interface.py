from __future__ import annotations
from typing import Optional

from abc import ABC, abstractmethod


# Durable string key/value storage used by the persistence adapter.
# Anything that can get/set/delete a string by key will do (sqlite, a dict, ...).
class IKeyValueStore(ABC):
    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    def close(self) -> None:
        pass
