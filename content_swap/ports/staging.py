# content_swap/ports/staging.py

from __future__ import annotations

from typing import TYPE_CHECKING, List, Protocol

if TYPE_CHECKING:
    from content_swap.core.swap_groups import SwapGroup


class StagingManager(Protocol):
    def recreate_staging(self, group: SwapGroup) -> None: ...

    def ensure_staging(self, group: SwapGroup) -> List[str]: ...

    def clear_staging(self, group: SwapGroup) -> None: ...

    def drop_retired(self, group: SwapGroup) -> List[str]: ...
