"""
Cookie header -> browser cookie conversion
"""
from typing import List, Dict, Any

from ..domain.account import parse_cookie_header


def to_browser_cookies(cookie_header: str, host: str = "labs.google") -> List[Dict[str, Any]]:
    """
    Convert a captured "name=value; ..." header into Playwright cookies

    __Host- cookies are bound to the exact host (no Domain attribute),
    everything else to the parent domain. __Secure-/__Host- are secure.
    """
    cookies = []
    for name, value in parse_cookie_header(cookie_header).items():
        secure = name.startswith("__Secure-") or name.startswith("__Host-")
        cookie = {
            "name": name,
            "value": value,
            "secure": secure,
            "httpOnly": True,
            "sameSite": "Lax",
        }
        if name.startswith("__Host-"):
            cookie["url"] = f"https://{host}/"
        else:
            cookie["domain"] = f".{host}"
            cookie["path"] = "/"
        cookies.append(cookie)
    return cookies
