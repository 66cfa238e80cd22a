"""
API Routers Module

Available routers:
- accounts: Account management endpoints
- jobs: Job queue, run and stop endpoints
- sessions: Browser session lifecycle endpoints
- system: Status, reset and log stream
"""

__all__ = ["accounts", "jobs", "sessions", "system"]
