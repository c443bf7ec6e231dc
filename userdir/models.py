"""Domain models for the user directory."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Tuple


@dataclass(frozen=True)
class User:
    """Represents a user account stored in the directory database."""

    id: int
    name: str
    email: str
    password_hash: str = field(repr=False)
    created_at: datetime


@dataclass(frozen=True)
class Page:
    """A bounded window over the users ordered by identity."""

    items: Tuple[User, ...]
    index: int
    size: int
    total: int

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.size)

    @property
    def has_previous(self) -> bool:
        # The previous link only makes sense up to one page past the end.
        return 1 < self.index <= self.total_pages + 1

    @property
    def has_next(self) -> bool:
        return self.index < self.total_pages

    def __iter__(self):
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


__all__ = ["Page", "User"]
