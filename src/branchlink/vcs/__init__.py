"""Version-control access."""

from branchlink.vcs.git_bridge import GitBridge, parse_porcelain

__all__ = ["GitBridge", "parse_porcelain"]
