"""
On-demand Generation Job Queue

Queue-backed background processing for long-running generation jobs: workers
start when work arrives, shut down after an idle grace period, and one job can
wait on the outcome of another job running in a separate queue.
"""

__version__ = "1.0.0"
