"""
Broadcast bus and fan-out hub tests.
"""
