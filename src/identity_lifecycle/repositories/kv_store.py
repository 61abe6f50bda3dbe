from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Sequence, Union

Item = dict[str, Any]
Key = dict[str, str]


@dataclass(frozen=True)
class Put:
    item: Item


@dataclass(frozen=True)
class Delete:
    key: Key


@dataclass(frozen=True)
class Update:
    key: Key
    fields: Item = field(default_factory=dict)


WriteOperation = Union[Put, Delete, Update]
BatchOperation = Union[Put, Delete]


def chunked(seq: Sequence[Any], size: int) -> list[Sequence[Any]]:
    if size < 1:
        raise ValueError("chunk size must be positive")
    return [seq[i : i + size] for i in range(0, len(seq), size)]


class KeyValueStore(ABC):
    """
    Async access to one logical table: a (PK, SK) primary key plus the
    GSI1 and GSI2 secondary indexes.

    The store never joins. Multi-hop lookups are sequential queries issued
    by the caller.
    """

    max_transact_items: int = 100

    @abstractmethod
    async def get(self, key: Key) -> Item | None:
        pass

    @abstractmethod
    async def query(self, partition: str, sort_prefix: str | None = None) -> list[Item]:
        """Items under `partition`, optionally restricted to SK beginning with `sort_prefix`."""

    @abstractmethod
    async def query_by_index(
        self, index_name: str, partition: str, sort_prefix: str | None = None
    ) -> list[Item]:
        pass

    @abstractmethod
    async def update(self, key: Key, fields: Item) -> Item:
        """SET `fields` on an existing item and return the new item. NotFoundError if absent."""

    @abstractmethod
    async def transact_write(self, operations: Sequence[WriteOperation]) -> None:
        """
        All-or-nothing. Raises StoreTransactionError and applies nothing when
        any operation fails or more than `max_transact_items` are submitted.
        """

    @abstractmethod
    async def batch_write(
        self, operations: Sequence[BatchOperation], max_batch_size: int = 25
    ) -> None:
        """
        Chunks of at most `max_batch_size`, issued sequentially. Earlier
        chunks are not rolled back when a later one fails.
        """
