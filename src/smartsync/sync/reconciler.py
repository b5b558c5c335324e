"""Three-way reconciliation of two replicas against a baseline.

``reconcile()`` is pure: it takes the baseline FileList, the conflicts
carried from the previous pass, and the current FileList of each replica,
and classifies every path per replica as added, deleted, modified or
conflicted.

Rules, in order:

1. Each side is compared with the baseline on its own. A carried conflict
   still present on that side with a digest other than the baseline's
   stays conflicted; one that vanished or matches the baseline again is
   dropped.
2. Modified on both sides becomes conflicted on both.
3. Added on both sides with the same digest needs nothing; with different
   digests it is conflicted on both.
4. Conflicted on both with the same digest is resolved.
5. Conflicted on one side only (the other side deleted the file or went
   back to the baseline) is resolved: the divergent copy is classified
   again against the baseline, so its edit shows up as modified.
6. A deletion is kept only while the other side still lists the path,
   and is dropped when the other side modified the path.

Incompatible changes always end up conflicted; content is never merged.
"""

from __future__ import annotations

import logging

from .models import ChangeSet, FileList, ReconciliationResult

logger = logging.getLogger(__name__)


def _empty() -> dict[str, FileList]:
    return {"added": {}, "deleted": {}, "modified": {}, "conflicted": {}}


def compare_to_baseline(
    baseline: FileList, carried: FileList, current: FileList
) -> dict[str, FileList]:
    """Classify one side's current FileList against the baseline.

    Args:
        baseline: Last reconciled FileList.
        carried: Conflicts carried from the previous pass.
        current: This side's current FileList.

    Returns:
        Dict of category name to FileList.
    """
    changes = _empty()
    for path, digest in current.items():
        base = baseline.get(path)
        if base == digest:
            continue
        if path in carried:
            changes["conflicted"][path] = digest
        elif base is None:
            changes["added"][path] = digest
        else:
            changes["modified"][path] = digest

    for path, digest in baseline.items():
        if path not in current:
            changes["deleted"][path] = digest
    return changes


def _reclassify(path: str, digest: str, baseline: FileList, changes: dict[str, FileList]) -> None:
    """Put a surviving copy back into added/modified relative to the baseline."""
    base = baseline.get(path)
    if base is None:
        changes["added"][path] = digest
    elif base != digest:
        changes["modified"][path] = digest


def _cross_reconcile(
    remote: dict[str, FileList],
    local: dict[str, FileList],
    baseline: FileList,
    remote_files: FileList,
    local_files: FileList,
) -> None:
    """Apply the cross-side rules to both sides in place."""
    for path in list(remote["modified"]):
        if path in local["modified"]:
            remote["conflicted"][path] = remote["modified"].pop(path)
            local["conflicted"][path] = local["modified"].pop(path)

    for path in list(remote["added"]):
        if path not in local["added"]:
            continue
        remote_digest = remote["added"].pop(path)
        local_digest = local["added"].pop(path)
        if remote_digest != local_digest:
            remote["conflicted"][path] = remote_digest
            local["conflicted"][path] = local_digest

    for path in list(remote["conflicted"]):
        if local["conflicted"].get(path) == remote["conflicted"][path]:
            del remote["conflicted"][path]
            del local["conflicted"][path]

    for side, other in ((remote, local), (local, remote)):
        for path in [p for p in side["conflicted"] if p not in other["conflicted"]]:
            digest = side["conflicted"].pop(path)
            logger.debug("Conflict on %s resolved on the other side", path)
            _reclassify(path, digest, baseline, side)

    for side, other_files, other in (
        (remote, local_files, local),
        (local, remote_files, remote),
    ):
        side["deleted"] = {
            path: digest
            for path, digest in side["deleted"].items()
            if path in other_files and path not in other["modified"]
        }


def reconcile(
    snapshot_files: FileList | None,
    snapshot_except: FileList | None,
    local_files: FileList,
    remote_files: FileList,
) -> ReconciliationResult:
    """Classify the changes of both replicas.

    Args:
        snapshot_files: Baseline from the last snapshot, ``None`` or empty
            when there is none.
        snapshot_except: Conflicts carried by the last snapshot.
        local_files: Current local FileList.
        remote_files: Current remote FileList.

    Returns:
        A ``ReconciliationResult`` whose ChangeSets are disjoint and whose
        conflicts are symmetric.
    """
    baseline = snapshot_files or {}
    carried = snapshot_except or {}

    if not remote_files:
        # Nothing remote to compare with: seed the remote from local
        return ReconciliationResult(local=ChangeSet(added=dict(local_files)))

    if not baseline:
        remote = _empty()
        local = _empty()
        remote["added"] = dict(remote_files)
        local["added"] = dict(local_files)
    else:
        remote = compare_to_baseline(baseline, carried, remote_files)
        local = compare_to_baseline(baseline, carried, local_files)

    _cross_reconcile(remote, local, baseline, remote_files, local_files)

    result = ReconciliationResult(remote=ChangeSet(**remote), local=ChangeSet(**local))
    logger.debug(
        "Reconciled: remote=%d local=%d conflicts=%d",
        result.remote.total(),
        result.local.total(),
        len(result.local.conflicted),
    )
    return result
