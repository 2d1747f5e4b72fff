# content_swap/ports/validator.py

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, Dict

if TYPE_CHECKING:
    from content_swap.core.swap_groups import SwapGroup


class Validator(Protocol):
    def validate(self, group: SwapGroup) -> Dict[str, int]: ...
