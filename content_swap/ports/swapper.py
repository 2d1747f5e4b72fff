# content_swap/ports/swapper.py

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Protocol

if TYPE_CHECKING:
    from content_swap.core.swap_groups import SwapGroup


class Swapper(Protocol):
    def swap(self, group: SwapGroup, keep_retired: bool = False) -> None: ...

    def plan(self, group: SwapGroup, keep_retired: bool = False) -> List[Any]: ...
