# content_swap/utils/progress.py

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

from tqdm import tqdm

from content_swap.config import env_bool


def progress_enable() -> bool:
    """Check if progress bars are enabled via ENABLE_PROGRESS. Returns True by default."""
    return env_bool("ENABLE_PROGRESS", default=True)


@dataclass
class NoopProgress:
    def update(self, n: int) -> None:
        return


@contextmanager
def track(*, total: Optional[int], desc: str):
    if not progress_enable():
        yield NoopProgress()
        return

    bar = tqdm(total=total, desc=desc, leave=False, dynamic_ncols=True)
    try:
        yield bar
    finally:
        bar.close()
