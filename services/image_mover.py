# services/image_mover.py
"""
Two-phase execution of a ReorderPlan against a BlobStore.

Phase 1 copies every source into the plan's private staging folder and deletes
it; phase 2 copies every staged blob to its final name and deletes the staged
copy. No step ever writes over a blob a later step still has to read.

The plan is journaled to '<staging>/plan.json' before phase 1 and rewritten
with phase 'placing' once phase 1 is done. An interrupted move is finished by
resume_pending(), which replays from the recorded phase.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from services.errors import PartialMoveError
from services.reorder_planner import STAGING_DIR, Move, ReorderPlan

logger = logging.getLogger(__name__)

JOURNAL_NAME = "plan.json"
PHASE_STAGING = "staging"
PHASE_PLACING = "placing"
PHASE_RENAMING = "renaming"


def _relocate(store, src: str, dst: str, overwrite: bool = True) -> bool:
    """Copy src to dst keeping its content type, then delete src. False if src is gone."""
    if not store.exists(src):
        return False
    content_type = store.get_content_type(src)
    data = store.download(src)
    if data is None:
        return False
    store.upload(dst, data, content_type, overwrite=overwrite)
    store.delete(src)
    return True


def _journal_doc(plan: ReorderPlan, phase: str, created_at: str) -> dict:
    return {
        "operationId": plan.operation_id,
        "oldName": plan.old_name,
        "newName": plan.new_name,
        "phase": phase,
        "createdAt": created_at,
        "moves": [{"source": m.source, "temp": m.temp, "final": m.final} for m in plan.moves],
    }


def _write_journal(store, path: str, doc: dict) -> None:
    store.upload(path, json.dumps(doc).encode("utf-8"), "application/json", overwrite=True)


def _noop() -> None:
    return None


def _run_phases(store, plan: ReorderPlan, journal_path: str, doc: dict, keepalive) -> None:
    completed: List[str] = []
    phase = doc["phase"]
    try:
        if phase == PHASE_STAGING:
            for step in plan.moves:
                if _relocate(store, step.source, step.temp):
                    completed.append(f"{step.source} -> {step.temp}")
                    logger.debug("[%s] staged %s", plan.operation_id, step.source)
                else:
                    logger.debug("[%s] source already gone: %s", plan.operation_id, step.source)
                keepalive()
            phase = doc["phase"] = PHASE_PLACING
            _write_journal(store, journal_path, doc)

        for step in plan.moves:
            if _relocate(store, step.temp, step.final):
                completed.append(f"{step.temp} -> {step.final}")
                logger.debug("[%s] placed %s", plan.operation_id, step.final)
            keepalive()

        store.delete(journal_path)
    except Exception as e:
        logger.error(
            "Image reorder %s interrupted during %s phase (%s -> %s). "
            "Completed steps: %s. Staged blobs and journal remain under %s",
            plan.operation_id, phase, plan.old_name, plan.new_name,
            completed or "none", plan.staging_prefix,
        )
        raise PartialMoveError(
            f"Image reorder interrupted during {phase}; it will be completed by the next "
            f"image operation on this unit (operation {plan.operation_id})",
            operation_id=plan.operation_id,
            phase=phase,
            completed=completed,
        ) from e


def _rename_in_place(store, plan: ReorderPlan) -> None:
    """Single unjournaled copy+delete (same index, new extension)."""
    step = plan.moves[0]
    if not store.exists(step.source):
        return
    content_type = store.get_content_type(step.source)
    data = store.download(step.source)
    if data is None:
        return
    # destination was free at planning time; refuse to clobber it now
    store.upload(step.final, data, content_type, overwrite=False)
    try:
        store.delete(step.source)
    except Exception as e:
        logger.error(
            "Rename %s (%s -> %s) wrote the destination but could not delete the source; "
            "both blobs now exist and %s must be removed by hand",
            plan.operation_id, step.source, step.final, step.source,
        )
        raise PartialMoveError(
            f"Image rename left both {plan.old_name} and {plan.new_name} in place "
            f"(operation {plan.operation_id})",
            operation_id=plan.operation_id,
            phase=PHASE_RENAMING,
            completed=[f"{step.source} -> {step.final} (copied)"],
        ) from e
    logger.info("Renamed %s -> %s", step.source, step.final)


def execute(store, plan: ReorderPlan, keepalive: Optional[Callable[[], None]] = None) -> None:
    """Apply plan. Raises PartialMoveError when a journaled move fails midway."""
    if not plan.moves:
        return
    keepalive = keepalive or _noop

    if not plan.staged:
        _rename_in_place(store, plan)
        return

    journal_path = plan.staging_prefix + JOURNAL_NAME
    created_at = datetime.now(timezone.utc).isoformat()
    doc = _journal_doc(plan, PHASE_STAGING, created_at)
    # nothing has moved yet if this fails
    _write_journal(store, journal_path, doc)
    logger.info(
        "Reorder %s: %s -> %s, %d blob move(s)",
        plan.operation_id, plan.old_name, plan.new_name, len(plan.moves),
    )
    _run_phases(store, plan, journal_path, doc, keepalive)


def _plan_from_doc(namespace: str, doc: dict) -> ReorderPlan:
    op_id = doc["operationId"]
    return ReorderPlan(
        old_name=doc.get("oldName", ""),
        new_name=doc.get("newName", ""),
        moves=[Move(m["source"], m["temp"], m["final"]) for m in doc.get("moves", [])],
        operation_id=op_id,
        staging_prefix=f"{namespace}{STAGING_DIR}/{op_id}/",
    )


def pending_operations(store, namespace: str) -> List[dict]:
    """Journals of interrupted reorders in this namespace, oldest first."""
    staging_root = f"{namespace}{STAGING_DIR}/"
    docs = []
    for rel in list(store.list(staging_root)):
        parts = rel.split("/")
        if len(parts) != 2 or parts[1] != JOURNAL_NAME:
            continue
        raw = store.download(staging_root + rel)
        if raw is None:
            continue
        try:
            doc = json.loads(raw)
            doc["operationId"] = doc.get("operationId") or parts[0]
        except (ValueError, AttributeError):
            logger.error("Unreadable reorder journal %s%s; leaving it for manual repair", staging_root, rel)
            continue
        docs.append(doc)
    docs.sort(key=lambda d: d.get("createdAt") or "")
    return docs


def resume_pending(store, namespace: str, keepalive: Optional[Callable[[], None]] = None) -> List[str]:
    """Finish every interrupted reorder in namespace. Returns the finished operation ids."""
    keepalive = keepalive or _noop
    finished = []
    for doc in pending_operations(store, namespace):
        plan = _plan_from_doc(namespace, doc)
        phase = doc.get("phase")
        if phase not in (PHASE_STAGING, PHASE_PLACING):
            logger.error("Reorder journal %s has unknown phase %r; skipping", plan.operation_id, phase)
            continue
        logger.warning(
            "Resuming interrupted reorder %s (%s -> %s) from %s phase",
            plan.operation_id, plan.old_name, plan.new_name, phase,
        )
        _run_phases(store, plan, plan.staging_prefix + JOURNAL_NAME, doc, keepalive)
        finished.append(plan.operation_id)
    return finished
