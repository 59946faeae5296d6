"""
paver - Tool-call corrections for Claude Code.

Blocks calls to tool names that do not exist and rewrites the parameters of
real tools before they run.
"""

from __future__ import annotations

__version__ = "0.1.0"

from paver.core.handler import check_invocation, intercept

__all__ = ["check_invocation", "intercept", "__version__"]
