#!/usr/bin/python
# coding: utf-8

import os
import json
import time
import uuid
import logging

from pathlib import Path
from typing import Any, Dict, Optional, Union

from update_manager.utils import utc_now

logger = logging.getLogger(__name__)

DEFAULT_LEASE_TTL = 300.0


class LeaseTimeoutError(RuntimeError):
    """Raised when a lease is held by another live owner past the wait timeout."""


def _pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
        return True
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return True


def read_lease(path: Union[str, Path]) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as lease_file:
            data = json.load(lease_file)
        return data if isinstance(data, dict) else {}
    except (OSError, ValueError):
        return {}


def lease_stale_reason(lease: Dict[str, Any], now: Optional[float] = None) -> Optional[str]:
    if not lease:
        return "invalid_metadata"
    now = time.time() if now is None else now
    expires = lease.get("expires_epoch")
    if isinstance(expires, (int, float)) and now > float(expires):
        return "expired"
    pid = lease.get("pid")
    if isinstance(pid, int) and not _pid_alive(pid):
        return "owner_process_missing"
    return None


class SessionLease:
    """
    Single-writer lease on a shared file.

    The lease is a small JSON record created with O_EXCL, so acquiring it is an
    atomic check-and-set. A lease that outlived its ttl, or whose owning process
    is gone, is considered stale and may be broken by the next caller.
    """

    def __init__(
        self,
        path: Union[str, Path],
        owner: str = "update-manager",
        ttl_seconds: float = DEFAULT_LEASE_TTL,
    ):
        self.path = Path(path)
        self.owner = owner
        self.ttl_seconds = ttl_seconds
        self.token = None

    @property
    def held(self) -> bool:
        return self.token is not None and read_lease(self.path).get("token") == self.token

    def _try_create(self) -> bool:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            return False
        now = time.time()
        token = uuid.uuid4().hex
        payload = {
            "token": token,
            "owner": self.owner,
            "pid": os.getpid(),
            "created_epoch": now,
            "created_at": utc_now(),
            "expires_epoch": now + self.ttl_seconds,
        }
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, sort_keys=True)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        self.token = token
        return True

    def _recently_created(self, grace_seconds: float = 2.0) -> bool:
        try:
            return (time.time() - self.path.stat().st_mtime) < grace_seconds
        except FileNotFoundError:
            return False

    def _break_stale(self, observed: Dict[str, Any]) -> None:
        """
        Remove a stale lease file without deleting a lease that replaced it.

        The file is renamed aside first, which only one caller can do. If the
        moved file is not the lease that was judged stale, another caller
        already took the lease, and it is linked back into place.
        """
        aside = self.path.with_name(f"{self.path.name}.stale-{uuid.uuid4().hex}")
        try:
            os.rename(self.path, aside)
        except FileNotFoundError:
            return
        try:
            if read_lease(aside).get("token") != observed.get("token"):
                try:
                    os.link(aside, self.path)
                except FileExistsError:
                    logger.warning(f"Lease {self.path} was replaced while breaking it")
        finally:
            aside.unlink(missing_ok=True)

    def acquire(self, timeout: float = 10.0, poll_interval: float = 0.05) -> "SessionLease":
        start = time.monotonic()
        while not self._try_create():
            observed = read_lease(self.path)
            stale_reason = lease_stale_reason(observed)
            if stale_reason == "invalid_metadata" and self._recently_created():
                # the owner may still be writing its payload
                stale_reason = None
            if stale_reason:
                logger.warning(f"Breaking stale lease {self.path} ({stale_reason})")
                self._break_stale(observed)
                continue
            if (time.monotonic() - start) >= timeout:
                holder = read_lease(self.path)
                raise LeaseTimeoutError(
                    f"Unable to acquire lease {self.path}; "
                    f"held by {holder.get('owner', 'unknown')}"
                )
            time.sleep(poll_interval)
        logger.debug(f"Acquired lease {self.path} as {self.owner}")
        return self

    def release(self) -> None:
        if self.token is None:
            return
        if read_lease(self.path).get("token") == self.token:
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass
        self.token = None

    def __enter__(self) -> "SessionLease":
        return self.acquire()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


def lease_status(path: Union[str, Path]) -> Dict[str, Any]:
    """Describe the current holder of a lease file, if any."""
    path = Path(path)
    if not path.exists():
        return {"held": False, "path": str(path)}
    lease = read_lease(path)
    stale_reason = lease_stale_reason(lease)
    return {
        "held": stale_reason is None,
        "path": str(path),
        "owner": lease.get("owner"),
        "created_at": lease.get("created_at"),
        "stale": stale_reason is not None,
        "stale_reason": stale_reason,
    }
