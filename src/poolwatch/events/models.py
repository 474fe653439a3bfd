"""Event category models — the selectable command groupings."""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass, field

from poolwatch.errors import ConfigurationError

_ALL_NAME = "all"


class Category(enum.Enum):
    """Coarse grouping of commands used to filter diagnostics.

    Values are the lower-cased configuration names.
    """

    SESSION = "sessions"
    DOWNLOAD = "downloads"
    UPLOAD = "uploads"
    LOGIN = "logins"
    DIRLIST = "directories"
    TRANSFER = "transfers"
    MISC = "misc"


@dataclass(frozen=True)
class EventSelection:
    """The set of categories chosen for diagnostics.

    ``include_all`` is the "every category, including future ones" sentinel;
    when it is set, ``categories`` is ignored.
    """

    categories: frozenset[Category] = field(default_factory=frozenset)
    include_all: bool = False

    @classmethod
    def everything(cls) -> EventSelection:
        return cls(include_all=True)

    @classmethod
    def of(cls, *categories: Category) -> EventSelection:
        return cls(categories=frozenset(categories))

    @classmethod
    def from_names(cls, names: Iterable[str]) -> EventSelection:
        """Parse configuration names (``Sessions``, ``Downloads``, ..., ``All``).

        Matching is case-insensitive. ``All`` short-circuits: entries after it
        are not examined.
        """
        names = list(names)
        if not names:
            raise ConfigurationError("wrong number of parameters")

        selected: set[Category] = set()
        for name in names:
            key = name.strip().lower()
            if key == _ALL_NAME:
                return cls.everything()
            try:
                selected.add(Category(key))
            except ValueError:
                raise ConfigurationError(f"unknown PoolEvent '{name}'") from None

        return cls(categories=frozenset(selected))

    def includes(self, category: Category) -> bool:
        return self.include_all or category in self.categories

    def names(self) -> list[str]:
        """Configuration names of the selection, for display."""
        if self.include_all:
            return ["All"]
        return [c.value.capitalize() for c in Category if c in self.categories]
