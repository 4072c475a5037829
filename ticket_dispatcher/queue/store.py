"""
File-backed job store.

One JSON file per job, named `<job_id>.json`. The directory a file sits in is
its lifecycle stage:

    <root>/print-queue/        pending
    <root>/print-processing/   in flight (claimed by the drain loop)
    <root>/print-failed/       failed, parked for an operator

Every transition is a single os.replace() inside one filesystem, so a job is
visible in exactly one stage directory at any instant. New files are written to
a temp name (`<id>.json.tmp-<ms>`) first and renamed into place; readers never
see a half-written job.
"""

from __future__ import annotations

import enum
import json
import logging
import os
import secrets
import string
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import JobExistsError, JobNotClaimable, JobStoreError, MalformedJobError

logger = logging.getLogger(__name__)

JOB_SUFFIX = ".json"
TEMP_MARKER = ".tmp-"
ERROR_SUFFIX = ".error.json"

WRITE_ATTEMPTS = 3
WRITE_BACKOFF_SECONDS = 0.1

_ID_ALPHABET = string.ascii_lowercase + string.digits


class Stage(enum.Enum):
    PENDING = "print-queue"
    IN_FLIGHT = "print-processing"
    FAILED = "print-failed"

    @property
    def dirname(self) -> str:
        return self.value


def new_job_id() -> str:
    """
    `<epoch-ms>-<9 base36 chars>`; lexical order of ids follows creation order.
    """
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"{int(time.time() * 1000)}-{suffix}"


def _is_job_file(name: str) -> bool:
    return name.endswith(JOB_SUFFIX) and not name.endswith(ERROR_SUFFIX) and TEMP_MARKER not in name


def _unlink_quietly(path: Path) -> None:
    try:
        path.unlink()
    except OSError:
        pass


class JobStore:
    def __init__(self, root: str | os.PathLike[str]):
        self.root = Path(root)
        for stage in Stage:
            self.stage_dir(stage).mkdir(parents=True, exist_ok=True)

    def stage_dir(self, stage: Stage) -> Path:
        return self.root / stage.dirname

    def path_for(self, stage: Stage, job_id: str) -> Path:
        filename = f"{job_id}{JOB_SUFFIX}"
        if not job_id or "/" in job_id or "\\" in job_id or job_id.startswith(".") or not _is_job_file(filename):
            # ids whose file name list() would skip can never be drained
            raise JobStoreError(f"invalid job id {job_id!r}", job_id)
        return self.stage_dir(stage) / filename

    def write(self, stage: Stage, job_id: str, payload: Dict[str, Any], *, exclusive: bool = False) -> Path:
        """
        Atomically persist `payload` as `<job_id>.json` in `stage`.

        Retries the temp-write + rename sequence WRITE_ATTEMPTS times before
        raising JobStoreError. With `exclusive`, the final name is created with
        a hard link instead of a rename, so an existing job file is never
        replaced; JobExistsError is raised instead.
        """
        target = self.path_for(stage, job_id)
        try:
            content = json.dumps(payload, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise JobStoreError(f"job {job_id} payload is not JSON serializable: {e}", job_id) from e

        last_error: Optional[OSError] = None
        for attempt in range(1, WRITE_ATTEMPTS + 1):
            tmp = target.with_name(f"{target.name}{TEMP_MARKER}{int(time.time() * 1000)}")
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                with tmp.open("w", encoding="utf-8") as f:
                    f.write(content)
                    f.flush()
                    os.fsync(f.fileno())
                if exclusive:
                    try:
                        os.link(tmp, target)
                    finally:
                        _unlink_quietly(tmp)
                else:
                    os.replace(tmp, target)
                return target
            except FileExistsError as e:
                raise JobExistsError(f"job {job_id} already exists in {stage.name}", job_id) from e
            except OSError as e:
                last_error = e
                logger.warning("Write of job %s failed (attempt %d/%d): %s", job_id, attempt, WRITE_ATTEMPTS, e)
                _unlink_quietly(tmp)
                if attempt < WRITE_ATTEMPTS:
                    time.sleep(WRITE_BACKOFF_SECONDS)
        raise JobStoreError(f"could not write job {job_id}: {last_error}", job_id) from last_error

    def move(self, job_id: str, src: Stage, dst: Stage) -> Path:
        """
        Rename `<job_id>.json` from `src` to `dst`.

        Raises JobNotClaimable when the source file no longer exists.
        """
        source = self.path_for(src, job_id)
        target = self.path_for(dst, job_id)
        try:
            os.replace(source, target)
        except FileNotFoundError as e:
            if not target.parent.exists():
                raise JobStoreError(f"stage directory {target.parent} missing", job_id) from e
            raise JobNotClaimable(f"job {job_id} is no longer in {src.name}", job_id) from e
        except OSError as e:
            raise JobStoreError(f"could not move job {job_id} {src.name} -> {dst.name}: {e}", job_id) from e
        return target

    def remove(self, stage: Stage, job_id: str) -> None:
        """
        Delete a job file. Missing files are ignored.
        """
        paths = [self.path_for(stage, job_id)]
        if stage is Stage.FAILED:
            paths.append(self._error_path(job_id))
        for path in paths:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                raise JobStoreError(f"could not remove {path.name}: {e}", job_id) from e

    def list(self, stage: Stage) -> List[str]:
        """
        Job ids present in `stage`, sorted by filename.
        """
        directory = self.stage_dir(stage)
        try:
            names = os.listdir(directory)
        except FileNotFoundError:
            return []
        except OSError as e:
            raise JobStoreError(f"could not list {directory}: {e}") from e
        return [name[: -len(JOB_SUFFIX)] for name in sorted(names) if _is_job_file(name)]

    def exists(self, stage: Stage, job_id: str) -> bool:
        return self.path_for(stage, job_id).is_file()

    def stage_of(self, job_id: str) -> Optional[Stage]:
        """
        The stage currently holding `job_id`, or None.
        """
        for stage in Stage:
            if self.exists(stage, job_id):
                return stage
        return None

    def read(self, stage: Stage, job_id: str) -> Dict[str, Any]:
        path = self.path_for(stage, job_id)
        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise JobNotClaimable(f"job {job_id} is not in {stage.name}", job_id) from e
        except ValueError as e:
            raise MalformedJobError(f"job {job_id} is not valid JSON: {e}", job_id) from e
        except OSError as e:
            raise JobStoreError(f"could not read job {job_id}: {e}", job_id) from e
        if not isinstance(data, dict):
            raise MalformedJobError(f"job {job_id} does not hold a JSON object", job_id)
        return data

    # Failure detail lives next to the parked job as `<id>.error.json`.

    def _error_path(self, job_id: str) -> Path:
        return self.stage_dir(Stage.FAILED) / f"{job_id}{ERROR_SUFFIX}"

    def write_error(self, job_id: str, error: str) -> None:
        info = {"jobId": job_id, "error": error, "failed_at": datetime.now(timezone.utc).isoformat()}
        path = self._error_path(job_id)
        tmp = path.with_name(f"{path.name}{TEMP_MARKER}{int(time.time() * 1000)}")
        try:
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(info, f, indent=2, ensure_ascii=False)
            os.replace(tmp, path)
        except OSError as e:
            raise JobStoreError(f"could not write error detail for {job_id}: {e}", job_id) from e

    def read_error(self, job_id: str) -> Optional[Dict[str, Any]]:
        try:
            with self._error_path(job_id).open("r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning("Unreadable error detail for job %s: %s", job_id, e)
            return None

    def clear_error(self, job_id: str) -> None:
        try:
            self._error_path(job_id).unlink()
        except FileNotFoundError:
            pass


__all__ = ["ERROR_SUFFIX", "JOB_SUFFIX", "JobStore", "Stage", "TEMP_MARKER", "new_job_id"]
