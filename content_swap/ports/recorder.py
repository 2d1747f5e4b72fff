# content_swap/ports/recorder.py

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, Any, Mapping, Optional

if TYPE_CHECKING:
    from content_swap.core.swap_groups import SwapGroup


class Recorder(Protocol):
    def record_staged(
            self,
            group: SwapGroup,
            row_count: int,
            metadata: Optional[Mapping[str, Any]] = None,
    ) -> str: ...

    def record_promoted(
            self,
            group: SwapGroup,
            row_count: int,
            metadata: Optional[Mapping[str, Any]] = None,
    ) -> str: ...
