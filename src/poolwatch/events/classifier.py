"""Command classifier — maps a command token to its event category."""

from __future__ import annotations

from poolwatch.events.models import Category, EventSelection

_RULES: dict[str, Category] = {
    "RETR": Category.DOWNLOAD,
    "APPE": Category.UPLOAD,
    "STOR": Category.UPLOAD,
    "LIST": Category.DIRLIST,
    "MLSD": Category.DIRLIST,
    "MLST": Category.DIRLIST,
    "NLST": Category.DIRLIST,
    "EPRT": Category.TRANSFER,
    "EPSV": Category.TRANSFER,
    "MODE": Category.TRANSFER,
    "PASV": Category.TRANSFER,
    "PORT": Category.TRANSFER,
    "STRU": Category.TRANSFER,
    "TYPE": Category.TRANSFER,
    "PASS": Category.LOGIN,
    "USER": Category.LOGIN,
}


def classify(command: str) -> Category:
    """Return the category for a command token.

    Unknown commands, including protocol extensions such as SSH requests,
    fall into ``Category.MISC``.
    """
    return _RULES.get(command.upper(), Category.MISC)


def is_enabled(command: str, selection: EventSelection) -> bool:
    """Whether diagnostics should be recorded for this command."""
    if selection.include_all:
        return True
    return selection.includes(classify(command))
