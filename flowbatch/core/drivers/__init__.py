"""
Drivers Package

Abstractions for external collaborators and their concrete
implementations (GPM-Login, Playwright over CDP, Flow HTTP API).
"""

from .abstractions import (
    EnvironmentProvider,
    AutomationDriver,
    BrowserPage,
    GenerationClient
)
from .cookies import to_browser_cookies

__all__ = [
    "EnvironmentProvider",
    "AutomationDriver",
    "BrowserPage",
    "GenerationClient",
    "to_browser_cookies"
]
