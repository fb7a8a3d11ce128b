"""
Notification Scheduler Test Suite.

- Retry state machine and backoff
- Status Store and Delay Queue invariants
- Scheduling, attempt execution and worker pool paths
- Crash recovery
"""
