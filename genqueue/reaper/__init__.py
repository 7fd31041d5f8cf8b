"""
Reaper module.
Contains the stalled job reaper for jobs orphaned by a crashed process.
"""

from genqueue.reaper.main import StalledJobReaper

__all__ = ["StalledJobReaper"]
