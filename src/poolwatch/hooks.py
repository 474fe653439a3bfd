"""Host extension points — the pre/post command and session-exit hooks.

A server embeds poolwatch by routing every client command through
``HookRegistry.dispatch`` and calling ``HookRegistry.exit`` when the
session ends.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import TypeVar

logger = logging.getLogger(__name__)

CommandHook = Callable[[str, Sequence[str]], None]
ExitHook = Callable[[], None]

T = TypeVar("T")


class HookRegistry:
    """Ordered callbacks run around each command and once at session exit."""

    def __init__(self) -> None:
        self._pre: list[CommandHook] = []
        self._post: list[CommandHook] = []
        self._exit: list[ExitHook] = []
        self._exited = False

    def register_pre(self, hook: CommandHook) -> None:
        self._pre.append(hook)

    def register_post(self, hook: CommandHook) -> None:
        """Register a hook run after each command, whether it succeeded or failed."""
        self._post.append(hook)

    def register_exit(self, hook: ExitHook) -> None:
        self._exit.append(hook)

    @property
    def has_hooks(self) -> bool:
        return bool(self._pre or self._post or self._exit)

    def dispatch(
        self,
        command: str,
        argv: Sequence[str],
        handler: Callable[[], T],
    ) -> T:
        """Run pre-hooks, ``handler``, then post-hooks.

        Post-hooks run even when the handler raises; the handler's exception
        is re-raised afterwards.
        """
        for hook in self._pre:
            hook(command, argv)
        try:
            return handler()
        finally:
            for hook in self._post:
                hook(command, argv)

    def exit(self) -> None:
        """Run exit hooks. Later calls are no-ops."""
        if self._exited:
            return
        self._exited = True
        logger.debug("Running %d exit hook(s)", len(self._exit))
        for hook in self._exit:
            hook()
