"""
Agent Module - Black Box Interface

Purpose: Node-side intake of intents and pod to process resolution
Interface: ProcessResolver.scan(), create_agent_app()
Hidden: cgroup path formats, procfs layout

Runs as its own process on every node (console script intently-agent).
"""

from .resolver import ProcessResolver, parse_cgroup_line, parse_cgroup_path
from .server import create_agent_app

__all__ = ["ProcessResolver", "create_agent_app", "parse_cgroup_line", "parse_cgroup_path"]
