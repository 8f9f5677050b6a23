"""
tandem — asyncio agent runtime

A driver loop streams a conversation through a reasoning backend, runs the
tool calls it asks for through an approval-gated scheduler, and feeds the
results back. The a2a package splits the same contract across a Planner
and an Executor.
"""

__version__ = "0.1.0"
