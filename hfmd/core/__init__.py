"""
Core transfer engine.

The `TransferCoordinator` acts as the job-level orchestrator, delegating the
download of each individual file to a `TransferTask`.
"""
