"""Post-commit side effects.

Hooks run after the transaction that triggered them has committed. A failing
hook never undoes the committed change: the failure is logged and reported
back to the caller as a warning string.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

Hook = Callable[[AsyncSession, Any], Awaitable[None]]

ORDER_SERVED = "order.served"
ORDER_PAID = "order.paid"


class PostCommitHooks:
    """Registry of async callbacks keyed by event name."""

    def __init__(self) -> None:
        self._hooks: Dict[str, List[Hook]] = defaultdict(list)

    def register(self, event: str, hook: Hook) -> None:
        self._hooks[event].append(hook)

    def clear(self) -> None:
        self._hooks.clear()

    async def run(self, event: str, session: AsyncSession, subject: Any) -> List[str]:
        """Run every hook for ``event`` and return warnings for failures."""

        warnings: List[str] = []
        for hook in self._hooks.get(event, []):
            try:
                await hook(session, subject)
            except Exception as exc:
                await session.rollback()
                name = getattr(hook, "__name__", repr(hook))
                logger.exception("post-commit hook %s failed for %s", name, event)
                warnings.append(f"{name}: {exc}")
        return warnings


hooks = PostCommitHooks()


def register_default_hooks(registry: PostCommitHooks = hooks) -> None:
    """Wire the stock deduction and report recount hooks."""

    from . import reports, stock

    registry.register(ORDER_SERVED, stock.deduct_for_served_order)
    registry.register(ORDER_PAID, reports.recount_for_paid_order)


__all__ = [
    "ORDER_PAID",
    "ORDER_SERVED",
    "PostCommitHooks",
    "hooks",
    "register_default_hooks",
]
