"""
Process table resolver.

Maps pods to the host processes running inside them by reading each
process's cgroup membership. The process table changes under our feet,
so anything that disappears mid-scan is skipped rather than reported.
"""

import logging
import os
import re
from typing import Dict, List, Optional, Tuple

from ..domain import PodProcess, PodProcessSnapshot
from ..errors import ProcessTableError

logger = logging.getLogger(__name__)

_PID_RE = re.compile(r"[0-9]+")
# systemd cgroup driver: kubepods-burstable-pod<uid>.slice
_SLICE_RE = re.compile(r"-pod([0-9A-Za-z_-]+)\.slice$")


def parse_cgroup_path(path: str) -> Optional[Tuple[str, str]]:
    """
    Extract (pod UID, container ID) from a cgroup hierarchy path.

    The first segment naming a pod gives the UID (underscores become
    hyphens); the segment after it, if any, is the container ID.

    >>> parse_cgroup_path("/kubepods/burstable/pod123abc_456def/docker-abcdef.scope")
    ('123abc-456def', 'docker-abcdef.scope')
    """
    segments = [s for s in path.strip().split("/") if s]
    for index, segment in enumerate(segments):
        if segment.startswith("pod"):
            pod_uid = segment[len("pod"):]
        else:
            match = _SLICE_RE.search(segment)
            if not match:
                continue
            pod_uid = match.group(1)

        if not pod_uid:
            continue
        container_id = segments[index + 1] if index + 1 < len(segments) else ""
        return pod_uid.replace("_", "-"), container_id
    return None


def parse_cgroup_line(line: str) -> Optional[Tuple[str, str]]:
    """
    Parse one ``hierarchy-ID:controllers:path`` line.

    Returns:
        (pod UID, container ID), or None if the path names no pod

    Raises:
        ValueError: If the line does not have three colon-separated fields
    """
    fields = line.rstrip("\n").split(":", 2)
    if len(fields) < 3:
        raise ValueError(f"expected 3 colon-separated fields, got {len(fields)}")
    return parse_cgroup_path(fields[2])


class ProcessResolver:
    """Stateless scanner over a procfs-style directory."""

    def __init__(self, proc_root: str = "/proc", cgroup_marker: str = "kubepods"):
        self.proc_root = proc_root
        self.cgroup_marker = cgroup_marker

    def scan(self) -> List[PodProcessSnapshot]:
        """
        Group live processes by the pod that owns them.

        Raises:
            ProcessTableError: If the process table root cannot be listed
        """
        try:
            entries = os.listdir(self.proc_root)
        except OSError as e:
            raise ProcessTableError(f"Read process table {self.proc_root}: {e}") from e

        pods: Dict[str, PodProcessSnapshot] = {}
        for name in sorted(entries):
            if not _PID_RE.fullmatch(name):
                continue
            pid = int(name)
            if pid <= 0 or not os.path.isdir(os.path.join(self.proc_root, name)):
                continue

            resolved = self._resolve_pid(pid)
            if resolved is None:
                continue
            pod_uid, container_id = resolved

            snapshot = pods.get(pod_uid)
            if snapshot is None:
                snapshot = PodProcessSnapshot(pod_uid=pod_uid, container_id=container_id)
                pods[pod_uid] = snapshot
            elif not snapshot.container_id:
                snapshot.container_id = container_id
            snapshot.processes.append(self.read_process(pid))

        logger.debug(f"Process scan found {len(pods)} pods under {self.proc_root}")
        return list(pods.values())

    def _resolve_pid(self, pid: int) -> Optional[Tuple[str, str]]:
        path = os.path.join(self.proc_root, str(pid), "cgroup")
        try:
            with open(path, encoding="utf-8", errors="replace") as f:
                for line in f:
                    if self.cgroup_marker not in line:
                        continue
                    try:
                        resolved = parse_cgroup_line(line)
                    except ValueError as e:
                        logger.warning(f"Skipping cgroup file of pid {pid}: {e}: {line.strip()!r}")
                        return None
                    if resolved is not None:
                        return resolved
        except OSError as e:
            logger.warning(f"Failed to read cgroup of pid {pid}: {e}")
        return None

    def read_process(self, pid: int) -> PodProcess:
        """Command name and parent PID; unreadable records leave zero values."""
        process = PodProcess(pid=pid)
        base = os.path.join(self.proc_root, str(pid))

        try:
            with open(os.path.join(base, "comm"), encoding="utf-8", errors="replace") as f:
                process.command = f.read().strip()
        except OSError as e:
            logger.debug(f"No comm for pid {pid}: {e}")

        try:
            with open(os.path.join(base, "stat"), encoding="utf-8", errors="replace") as f:
                stat = f.read()
            # pid (comm) state ppid ...; comm may itself contain spaces or parens
            fields = stat[stat.rindex(")") + 1:].split()
            process.parent_pid = int(fields[1])
        except (OSError, ValueError, IndexError) as e:
            logger.debug(f"No parent pid for pid {pid}: {e}")

        return process
