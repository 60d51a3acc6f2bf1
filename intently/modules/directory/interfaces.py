"""Directory interfaces following Black Box Design principles."""
from typing import List, Optional, Protocol

from ..domain import AgentPod, Pod, QueryAgentPodsOptions, QueryPodsOptions


class Directory(Protocol):
    """Read-only view of pod placement in the cluster."""

    def query_pods(self, options: Optional[QueryPodsOptions]) -> List[Pod]:
        """
        Pods matching the options.

        Raises:
            MissingQueryInputError: If options is None
            ClusterClientUnavailableError: If no cluster client is initialized
            InvalidCommandRegexError: If the command regex does not compile
            ClusterQueryError: If a live listing fails
        """
        ...

    def query_agent_pods(self, options: Optional[QueryAgentPodsOptions]) -> List[AgentPod]:
        """Agent pods matching the options, same error contract as query_pods."""
        ...
