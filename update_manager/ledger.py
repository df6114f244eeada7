#!/usr/bin/python
# coding: utf-8

import json
import logging

from pathlib import Path
from typing import Optional, Tuple, Union
from pydantic import ValidationError

from update_manager.lock import DEFAULT_LEASE_TTL, SessionLease
from update_manager.models import DEFAULT_UPDATE_TYPE, AppliedLedger, LedgerEntry
from update_manager.utils import atomic_write_json, load_json_file, utc_now

logger = logging.getLogger(__name__)

LEDGER_FILE = "applied-updates.json"


def ledger_lock_path(path: Union[str, Path]) -> Path:
    path = Path(path)
    return path.with_name(f"{path.name}.lock")


def load_ledger(path: Union[str, Path]) -> AppliedLedger:
    """
    Read the applied-updates ledger of a project.

    A missing file is an empty ledger. A file that exists but cannot be parsed
    raises ValueError so it is never silently replaced.
    """
    try:
        data = load_json_file(path, default=None)
    except json.JSONDecodeError as e:
        raise ValueError(f"Corrupt ledger {path}: {e}")
    if data is None:
        return AppliedLedger()
    try:
        return AppliedLedger.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid ledger {path}: {e}")


def save_ledger(path: Union[str, Path], ledger: AppliedLedger) -> None:
    atomic_write_json(path, ledger.to_dict())


def record_applied(
    path: Union[str, Path],
    update_id: str,
    applied_by: str,
    update_type: Optional[str] = None,
    owner: Optional[str] = None,
    lease_ttl: float = DEFAULT_LEASE_TTL,
) -> Tuple[LedgerEntry, bool]:
    """
    Append an update id to the ledger unless it is already there.

    The read-modify-write happens under a lease on the ledger and the new
    document replaces the old one by rename, so concurrent sessions can
    neither interleave writes nor observe a half written file.

    Returns:
        Tuple[LedgerEntry, bool]: The ledger entry for the id and whether it
            was appended by this call.
    """
    lease = SessionLease(
        ledger_lock_path(path), owner=owner or applied_by, ttl_seconds=lease_ttl
    )
    with lease:
        ledger = load_ledger(path)
        for entry in ledger.applied:
            if entry.id == update_id:
                logger.info(f"Update {update_id} already recorded in {path}")
                return entry, False
        entry = LedgerEntry(
            id=update_id,
            applied_at=utc_now(),
            applied_by=applied_by,
            update_type=update_type or DEFAULT_UPDATE_TYPE,
        )
        ledger.applied.append(entry)
        save_ledger(path, ledger)
    logger.info(f"Recorded update {update_id} as applied by {applied_by}")
    return entry, True
