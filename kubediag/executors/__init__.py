"""Embedded processors run in-process by the stage engines.

Submodules:
    command   -- Runs a command and captures its output.
    profiler  -- Fetches profiles and stores them under the data root.
"""

from kubediag.executors.command import CommandExecutor
from kubediag.executors.profiler import ProfilerRunner

__all__ = ["CommandExecutor", "ProfilerRunner"]
