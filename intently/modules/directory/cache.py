"""
Pod cache for the cluster directory.

Pods are stored as immutable PodRecord snapshots converted from the
Kubernetes API objects at ingestion, keyed by pod UID.
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..domain import LabelSelector, labels_match
from .rwlock import RWLock


@dataclass(frozen=True)
class ContainerSpec:
    name: str
    command: Tuple[str, ...]
    first_port: Optional[int] = None


@dataclass(frozen=True)
class PodRecord:
    uid: str
    name: str
    namespace: str
    labels: Dict[str, str] = field(default_factory=dict)
    node_name: str = ""
    phase: Optional[str] = None
    pod_ip: Optional[str] = None
    host_ip: Optional[str] = None
    containers: Tuple[ContainerSpec, ...] = ()
    container_ids: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_v1(cls, pod: Any) -> "PodRecord":
        """Build a snapshot from a kubernetes.client.V1Pod."""
        meta = pod.metadata
        spec = pod.spec
        status = pod.status

        containers = []
        for container in (spec.containers if spec else None) or []:
            command = list(container.command or []) + list(container.args or [])
            ports = container.ports or []
            first_port = ports[0].container_port if ports else None
            containers.append(
                ContainerSpec(name=container.name, command=tuple(command), first_port=first_port)
            )

        container_ids = {}
        for cs in (status.container_statuses if status else None) or []:
            container_ids[cs.name] = cs.container_id or ""

        return cls(
            uid=meta.uid,
            name=meta.name,
            namespace=meta.namespace,
            labels=dict(meta.labels or {}),
            node_name=(spec.node_name if spec else None) or "",
            phase=status.phase if status else None,
            pod_ip=status.pod_ip if status else None,
            host_ip=status.host_ip if status else None,
            containers=tuple(containers),
            container_ids=container_ids,
        )

    def first_container_port(self) -> int:
        for container in self.containers:
            if container.first_port is not None:
                return container.first_port
        return 0


class EventKind(str, Enum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    SYNC = "SYNC"


@dataclass(frozen=True)
class PodEvent:
    """
    One cache mutation.

    ADDED/MODIFIED/DELETED carry a single record; SYNC carries the full
    listing and replaces the cache contents.
    """

    kind: EventKind
    record: Optional[PodRecord] = None
    records: Tuple[PodRecord, ...] = ()


class PodCache:
    """
    Pod records keyed by UID, guarded by a reader/writer lock.

    Deleted UIDs are remembered (bounded) so a stale listing that is still
    in flight when a delete arrives cannot bring the pod back.
    """

    def __init__(self, max_tombstones: int = 10000):
        self._lock = RWLock()
        self._pods: Dict[str, PodRecord] = {}
        self._tombstones: "OrderedDict[str, None]" = OrderedDict()
        self._max_tombstones = max_tombstones

    def upsert(self, record: PodRecord) -> bool:
        """Insert or replace a record. Returns False for deleted UIDs."""
        with self._lock.write_locked():
            if record.uid in self._tombstones:
                return False
            self._pods[record.uid] = record
            return True

    def add_if_absent(self, record: PodRecord) -> bool:
        """Insert a record unless its UID is cached or deleted already."""
        with self._lock.write_locked():
            if record.uid in self._tombstones or record.uid in self._pods:
                return False
            self._pods[record.uid] = record
            return True

    def delete(self, uid: str) -> None:
        with self._lock.write_locked():
            self._pods.pop(uid, None)
            self._tombstones[uid] = None
            self._tombstones.move_to_end(uid)
            while len(self._tombstones) > self._max_tombstones:
                self._tombstones.popitem(last=False)

    def replace(self, records: Iterable[PodRecord]) -> None:
        """Replace the whole cache with an authoritative listing."""
        fresh = {record.uid: record for record in records}
        with self._lock.write_locked():
            self._pods = fresh
            for uid in fresh:
                self._tombstones.pop(uid, None)

    def is_deleted(self, uid: str) -> bool:
        with self._lock.read_locked():
            return uid in self._tombstones

    def get(self, uid: str) -> Optional[PodRecord]:
        with self._lock.read_locked():
            return self._pods.get(uid)

    def select(
        self, namespaces: Sequence[str], selectors: Sequence[LabelSelector]
    ) -> List[PodRecord]:
        """Records in the given namespaces (empty = all) matching every selector."""
        ns_set = set(namespaces)
        with self._lock.read_locked():
            records = list(self._pods.values())
        return [
            r for r in records
            if (not ns_set or r.namespace in ns_set) and labels_match(r.labels, selectors)
        ]

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._pods)
