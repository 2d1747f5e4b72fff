# content_swap/core/promotion.py

from __future__ import annotations

from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import datetime, timezone
from time import time
from typing import TYPE_CHECKING, Dict, Optional

from loguru import logger

if TYPE_CHECKING:
    # Imported only for type hints.
    from content_swap.core.swap_groups import SwapGroup
    from content_swap.ports.database import Database
    from content_swap.ports.lock import LockManager
    from content_swap.ports.recorder import Recorder
    from content_swap.ports.staging import StagingManager
    from content_swap.ports.swapper import Swapper
    from content_swap.ports.validator import Validator


@dataclass(frozen=True)
class PromotionResult:
    group: str
    counts: Dict[str, int]
    dry_run: bool
    deployment_id: Optional[str] = None
    elapsed_s: float = 0.0

    @property
    def row_count(self) -> int:
        return sum(self.counts.values())


@dataclass(frozen=True)
class PromotionPipeline:
    # Database access (schema name for lock keys)
    db: Database

    # Preflight check on the staging tables
    validator: Validator

    # Atomic staging -> live rename
    swapper: Swapper

    # content_deployments audit trail
    recorder: Recorder

    # Rebuilds empty staging tables for the next load
    staging: StagingManager

    # Optional guard against two operators promoting the same group
    lock: Optional[LockManager] = field(default=None)

    def _recreate_staging_after_swap(self, group: SwapGroup) -> None:
        logger.info("Recreating empty staging tables...")
        try:
            self.staging.recreate_staging(group)
        except Exception:
            logger.exception(
                f"Group '{group.label}' is live, but post-swap bookkeeping failed: "
                f"staging was not recreated. Run recreate-staging {group.label} once the cause is fixed."
            )
            raise

    def promote(
            self,
            group: SwapGroup,
            *,
            dry_run: bool = False,
            keep_retired: bool = False,
    ) -> PromotionResult:
        """
        validate -> swap -> record -> recreate staging.

        Validation and transaction errors propagate unchanged; nothing is
        reported as promoted unless the swap transaction committed.
        """
        schema = getattr(self.db, "schema", "public")
        lock_key = f"promote:{schema}:{group.label}"
        guard = self.lock.acquire(lock_key) if self.lock is not None else nullcontext()

        start = time()

        with guard:
            # 1. Validate staging tables
            logger.info(f"Validating staging tables for <green>{group.label}</green>...")
            counts = self.validator.validate(group)

            if dry_run:
                for stmt in self.swapper.plan(group, keep_retired=keep_retired):
                    logger.debug(f"[dry-run:{group.label}] {stmt.sql}")
                logger.info(f"Dry run: skipping swap of <green>{group.label}</green>")
                return PromotionResult(group=group.label, counts=counts, dry_run=True)

            # 2. Atomic swap (single transaction)
            self.swapper.swap(group, keep_retired=keep_retired)

            # 3. Record the deployment; the swap is committed from here on
            total = sum(counts.values())
            try:
                deployment_id = self.recorder.record_promoted(
                    group,
                    total,
                    {
                        "swapped_at": datetime.now(timezone.utc).isoformat(),
                        "keep_retired": keep_retired,
                        "tables": list(group.tables),
                        "counts": counts,
                    },
                )
            except Exception:
                logger.exception(
                    f"Group '{group.label}' is live, but post-swap bookkeeping failed: "
                    f"the deployment was not recorded."
                )
                raise
            finally:
                # 4. Empty staging tables for the next deployment, even if recording failed
                self._recreate_staging_after_swap(group)

        elapsed = time() - start
        logger.success(f"{group.label} promoted in <green>{elapsed:.2f}</green>s ({total} rows)")
        return PromotionResult(
            group=group.label,
            counts=counts,
            dry_run=False,
            deployment_id=deployment_id,
            elapsed_s=elapsed,
        )
