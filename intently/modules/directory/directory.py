"""
Cluster pod directory.

Answers "which pods match this selector" and "which agents serve these
nodes" from a cache fed by a pod watch. Until the first full listing has
been applied every query goes to the cluster API directly and warms the
cache as a side effect.
"""

import logging
import queue
import re
import threading
import time
from typing import Any, Callable, List, Optional, Sequence

import urllib3
from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes import watch as k8s_watch
from kubernetes.client.rest import ApiException

from ...config.provider import KubernetesConfig
from ..domain import (
    AgentPod,
    Container,
    LabelSelector,
    NodeState,
    Pod,
    QueryAgentPodsOptions,
    QueryPodsOptions,
    build_label_selector,
)
from ..errors import (
    ClusterClientUnavailableError,
    ClusterQueryError,
    InvalidCommandRegexError,
    InvalidLabelSelectorError,
    MissingQueryInputError,
)
from .cache import EventKind, PodCache, PodEvent, PodRecord

logger = logging.getLogger(__name__)

HTTP_STATUS_GONE = 410
_SYNC_POLL = 0.1

_IDLE = "idle"
_RUNNING = "running"
_STOPPED = "stopped"


class PodDirectory:
    """Cached, thread-safe view of pod placement in the cluster."""

    def __init__(
        self,
        core_api: Any,
        config: KubernetesConfig,
        cache: Optional[PodCache] = None,
        watch_factory: Callable[[], Any] = k8s_watch.Watch,
    ):
        """
        Initialize the directory.

        Args:
            core_api: kubernetes.client.CoreV1Api (or compatible)
            config: Cluster API configuration
            cache: Optional pre-built cache
            watch_factory: Builds the watch used by the event subscription
        """
        self.core_api = core_api
        self.config = config
        self.cache = cache or PodCache()
        self._watch_factory = watch_factory

        self._synced = threading.Event()
        self._stop_event = threading.Event()
        self._events: "queue.Queue[Optional[PodEvent]]" = queue.Queue()

        self._state = _IDLE
        self._state_lock = threading.Lock()
        self._watch = None
        self._watcher_thread: Optional[threading.Thread] = None
        self._updater_thread: Optional[threading.Thread] = None

    @classmethod
    def from_config(cls, config: KubernetesConfig) -> "PodDirectory":
        """Build a directory with its own API client (no global kube config)."""
        configuration = k8s_client.Configuration()
        try:
            if config.in_cluster:
                k8s_config.load_incluster_config(client_configuration=configuration)
            elif config.kube_config_path:
                k8s_config.load_kube_config(
                    config_file=config.kube_config_path,
                    client_configuration=configuration,
                )
            else:
                raise ClusterClientUnavailableError(
                    "No kubeconfig path configured and not running in cluster"
                )
        except (k8s_config.ConfigException, OSError) as e:
            raise ClusterClientUnavailableError(f"Failed to load Kubernetes config: {e}") from e

        api_client = k8s_client.ApiClient(configuration)
        return cls(k8s_client.CoreV1Api(api_client), config)

    # ------------------------------------------------------------------ #
    # Subscription lifecycle                                             #
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        """Start the pod watch. Only the first call has any effect."""
        if self.core_api is None:
            raise ClusterClientUnavailableError("Kubernetes client is not initialized")

        with self._state_lock:
            if self._state != _IDLE:
                return
            self._state = _RUNNING

        self._updater_thread = threading.Thread(
            target=self._update_loop, name="pod-cache-updater", daemon=True
        )
        self._watcher_thread = threading.Thread(
            target=self._watch_loop, name="pod-watcher", daemon=True
        )
        self._updater_thread.start()
        self._watcher_thread.start()
        logger.info("Starting pod watcher")

    def stop(self) -> None:
        """Stop the pod watch. Only the first call has any effect."""
        with self._state_lock:
            if self._state == _STOPPED:
                return
            was_running = self._state == _RUNNING
            self._state = _STOPPED

        self._stop_event.set()
        if not was_running:
            return

        if self._watch is not None:
            self._watch.stop()
        self._events.put(None)
        if self._updater_thread is not None:
            self._updater_thread.join(timeout=5)
        logger.info("Pod watcher stopped")

    @property
    def has_synced(self) -> bool:
        return self._synced.is_set()

    def wait_for_sync(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the initial listing has been applied.

        Returns:
            True if synced, False on timeout or once the directory is stopped
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self._synced.is_set():
            if self._stop_event.is_set():
                return False
            remaining = _SYNC_POLL if deadline is None else min(_SYNC_POLL, deadline - time.monotonic())
            if remaining <= 0:
                return False
            self._synced.wait(remaining)
        return True

    # ------------------------------------------------------------------ #
    # Queries                                                            #
    # ------------------------------------------------------------------ #

    def query_pods(self, options: Optional[QueryPodsOptions]) -> List[Pod]:
        """
        Pods matching namespaces, label selectors and optional command regex.

        Containers whose command does not match the regex are dropped from
        the result; pods left with no container are dropped entirely.
        """
        if options is None:
            raise MissingQueryInputError("query_pods requires options")
        if self.core_api is None:
            raise ClusterClientUnavailableError("Kubernetes client is not initialized")

        cmd_regex = None
        if options.command_regex:
            try:
                cmd_regex = re.compile(options.command_regex)
            except re.error as e:
                raise InvalidCommandRegexError(
                    f"Invalid command regex {options.command_regex!r}: {e}"
                ) from e

        _validate_selectors(options.label_selectors)
        records = self._list_pods(options.namespaces, options.label_selectors)

        results = []
        for record in records:
            containers = _build_containers(record, cmd_regex)
            if cmd_regex is not None and not containers:
                continue
            results.append(
                Pod(
                    namespace=record.namespace,
                    labels=dict(record.labels),
                    pod_id=record.uid,
                    node_id=record.node_name,
                    containers=tuple(containers),
                )
            )
        return results

    def query_agent_pods(self, options: Optional[QueryAgentPodsOptions]) -> List[AgentPod]:
        """Agent pods matching the agent label, optionally restricted to node IDs."""
        if options is None:
            raise MissingQueryInputError("query_agent_pods requires options")
        if self.core_api is None:
            raise ClusterClientUnavailableError("Kubernetes client is not initialized")

        _validate_selectors([options.agent_label])
        node_filter = set(options.node_ids)
        records = self._list_pods(options.namespaces, [options.agent_label])

        results = []
        for record in records:
            if node_filter and record.node_name not in node_filter:
                continue
            results.append(
                AgentPod(
                    node_id=record.node_name,
                    host=record.pod_ip or record.host_ip or "",
                    port=record.first_container_port(),
                    state=NodeState.from_pod_phase(record.phase),
                )
            )
        return results

    def _list_pods(
        self, namespaces: Sequence[str], selectors: Sequence[LabelSelector]
    ) -> List[PodRecord]:
        if self._synced.is_set():
            return self.cache.select(namespaces, selectors)
        return self._list_pods_live(namespaces, build_label_selector(selectors))

    def _list_pods_live(self, namespaces: Sequence[str], label_selector: str) -> List[PodRecord]:
        """
        List pods straight from the API, one namespace at a time, page by page.

        Records only warm the cache while it has not synced, and never
        replace a record the watch already delivered.
        """
        results = []
        seen = set()
        for namespace in list(dict.fromkeys(namespaces)) or [None]:
            for item in self._paginate(namespace, label_selector):
                record = PodRecord.from_v1(item)
                if record.uid in seen:
                    continue
                seen.add(record.uid)
                if not self._synced.is_set():
                    self.cache.add_if_absent(record)
                results.append(record)
        return [r for r in results if not self.cache.is_deleted(r.uid)]

    def _paginate(self, namespace: Optional[str], label_selector: str):
        continue_token = None
        while True:
            kwargs = {
                "label_selector": label_selector,
                "limit": self.config.page_size,
                "_request_timeout": self.config.request_timeout,
            }
            if continue_token:
                kwargs["_continue"] = continue_token
            try:
                if namespace is None:
                    pod_list = self.core_api.list_pod_for_all_namespaces(**kwargs)
                else:
                    pod_list = self.core_api.list_namespaced_pod(namespace, **kwargs)
            except (ApiException, urllib3.exceptions.HTTPError) as e:
                where = f"namespace {namespace}" if namespace else "all namespaces"
                raise ClusterQueryError(f"List pods in {where}: {e}") from e

            yield from pod_list.items or []

            continue_token = pod_list.metadata._continue if pod_list.metadata else None
            if not continue_token:
                return

    # ------------------------------------------------------------------ #
    # Event pipeline                                                     #
    # ------------------------------------------------------------------ #

    def apply_event(self, event: PodEvent) -> None:
        """
        Apply one event to the cache.

        Called by the updater thread; the only writer for stream events.
        """
        if event.kind == EventKind.SYNC:
            self.cache.replace(event.records)
            if not self._synced.is_set():
                self._synced.set()
                logger.info(f"Pod cache synced with {len(event.records)} pods")
        elif event.kind in (EventKind.ADDED, EventKind.MODIFIED):
            self.cache.upsert(event.record)
            logger.debug(f"Pod {event.kind.value.lower()}: {event.record.namespace}/{event.record.name}")
        elif event.kind == EventKind.DELETED:
            self.cache.delete(event.record.uid)
            logger.debug(f"Pod deleted: {event.record.namespace}/{event.record.name}")

    def _update_loop(self) -> None:
        while True:
            event = self._events.get()
            if event is None:
                break
            try:
                self.apply_event(event)
            except Exception as e:
                logger.error(f"Failed to apply pod event {event.kind.value}: {e}")

    def _relist(self) -> str:
        """Full listing across namespaces. Emits a SYNC event, returns its resourceVersion."""
        records = []
        resource_version = ""
        continue_token = None
        while True:
            kwargs = {
                "limit": self.config.page_size,
                "_request_timeout": self.config.request_timeout,
            }
            if continue_token:
                kwargs["_continue"] = continue_token
            pod_list = self.core_api.list_pod_for_all_namespaces(**kwargs)
            records.extend(PodRecord.from_v1(item) for item in pod_list.items or [])
            resource_version = pod_list.metadata.resource_version
            continue_token = pod_list.metadata._continue
            if not continue_token:
                break

        self._events.put(PodEvent(kind=EventKind.SYNC, records=tuple(records)))
        return resource_version

    def _watch_loop(self) -> None:
        resource_version = None
        while not self._stop_event.is_set():
            try:
                if resource_version is None:
                    resource_version = self._relist()

                self._watch = self._watch_factory()
                if self._stop_event.is_set():
                    break
                stream = self._watch.stream(
                    self.core_api.list_pod_for_all_namespaces,
                    resource_version=resource_version,
                    timeout_seconds=self.config.watch_timeout,
                )
                for raw in stream:
                    if self._stop_event.is_set():
                        break
                    event, version = _to_event(raw)
                    if version:
                        resource_version = version
                    if event is not None:
                        self._events.put(event)

            except ApiException as e:
                if e.status == HTTP_STATUS_GONE:
                    logger.info("Pod watch expired, relisting")
                    resource_version = None
                    continue
                logger.warning(f"Pod watch error: {e}")
                resource_version = None
                self._stop_event.wait(self.config.watch_backoff)
            except Exception as e:
                logger.warning(f"Pod watch connection error: {e}")
                resource_version = None
                self._stop_event.wait(self.config.watch_backoff)


def _to_event(raw: dict):
    """Convert a watch stream item into (PodEvent or None, resourceVersion)."""
    kind = raw.get("type")
    obj = raw.get("object")
    metadata = getattr(obj, "metadata", None)
    if metadata is None:
        return None, None

    version = metadata.resource_version
    if kind not in (EventKind.ADDED.value, EventKind.MODIFIED.value, EventKind.DELETED.value):
        # BOOKMARK only advances the resourceVersion
        return None, version

    return PodEvent(kind=EventKind(kind), record=PodRecord.from_v1(obj)), version


def _validate_selectors(selectors: Sequence[LabelSelector]) -> None:
    """Reject selectors that would render into a different label query."""
    for selector in selectors:
        if not selector.key:
            continue
        try:
            selector.validate()
        except ValueError as e:
            raise InvalidLabelSelectorError(f"Invalid label selector {selector.to_requirement()!r}: {e}") from e


def _build_containers(record: PodRecord, cmd_regex: Optional["re.Pattern"]) -> List[Container]:
    containers = []
    for spec in record.containers:
        if cmd_regex is not None and not cmd_regex.search(" ".join(spec.command)):
            continue
        containers.append(
            Container(
                container_id=record.container_ids.get(spec.name, ""),
                name=spec.name,
                command=spec.command,
            )
        )
    return containers
