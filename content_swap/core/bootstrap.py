# content_swap/core/bootstrap.py

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, List

from loguru import logger
from sqlalchemy import text

from content_swap.db.client import relation_exists
from content_swap.utils.identifiers import sanitize_ident

if TYPE_CHECKING:
    from content_swap.core.swap_groups import SwapGroup
    from content_swap.db.recorder import DeploymentRecorder
    from content_swap.db.swapper import BlueGreenSwapper
    from content_swap.ports.database import Database
    from content_swap.ports.staging import StagingManager


def install_lock_triggers(db: Database, swapper: BlueGreenSwapper, groups: Iterable[SwapGroup]) -> List[str]:
    """
    Install the trigger function and lock every existing live table.
    Tables that are not live yet get their trigger at first promotion.
    """
    schema = sanitize_ident(getattr(db, "schema", "public"))
    installed: List[str] = []

    with db.begin() as conn:
        conn.execute(text(swapper.reject_writes_function_sql()))
        for group in groups:
            for lt in group.lock_triggers:
                if not relation_exists(conn, schema, lt.table):
                    logger.info(f"Live table {lt.table} not created yet; skipping {lt.trigger_name}")
                    continue
                for sql in swapper.lock_trigger_sql(lt.table, lt.trigger_name):
                    conn.execute(text(sql))
                installed.append(lt.trigger_name)

    logger.info(f"Lock triggers installed: <green>{', '.join(installed) or 'none'}</green>")
    return installed


def bootstrap(
        db: Database,
        swapper: BlueGreenSwapper,
        recorder: DeploymentRecorder,
        staging: StagingManager,
        groups: Iterable[SwapGroup],
) -> None:
    """Make a freshly provisioned database ready for its first load + promotion."""
    groups = list(groups)
    recorder.ensure_table()
    install_lock_triggers(db, swapper, groups)
    for group in groups:
        staging.ensure_staging(group)
