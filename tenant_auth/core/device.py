"""Client device details derived from request headers."""

import hashlib
from dataclasses import dataclass

from fastapi import Request

_BROWSERS = (
    ("Edg/", "Edge"),
    ("OPR/", "Opera"),
    ("Firefox/", "Firefox"),
    ("Chrome/", "Chrome"),
    ("Safari/", "Safari"),
)

_OPERATING_SYSTEMS = (
    ("iPhone", "iOS"),
    ("iPad", "iOS"),
    ("Android", "Android"),
    ("Windows", "Windows"),
    ("Mac OS X", "macOS"),
    ("Macintosh", "macOS"),
    ("Linux", "Linux"),
)


@dataclass(frozen=True)
class DeviceInfo:
    """Device description stored on sessions and audit entries"""

    device_type: str = "Desktop"  # Desktop | Mobile | Tablet
    browser: str = "Unknown"
    os: str = "Unknown"
    user_agent: str = ""
    ip_address: str | None = None
    fingerprint: str = ""

    def describe(self) -> str:
        return f"{self.browser} on {self.os} ({self.device_type})"


def parse_user_agent(user_agent: str) -> tuple[str, str, str]:
    """
    Classify a User-Agent string.

    Returns:
        (device_type, browser, os)
    """
    if "iPad" in user_agent or "Tablet" in user_agent:
        device_type = "Tablet"
    elif "Mobile" in user_agent or "iPhone" in user_agent or "Android" in user_agent:
        device_type = "Mobile"
    else:
        device_type = "Desktop"

    browser = next((name for marker, name in _BROWSERS if marker in user_agent), "Unknown")
    os_name = next((name for marker, name in _OPERATING_SYSTEMS if marker in user_agent), "Unknown")
    return device_type, browser, os_name


def get_client_ip(request: Request) -> str | None:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer"""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


def device_fingerprint(user_agent: str, accept_language: str) -> str:
    """Hash of stable headers; the IP is left out because it changes on mobile networks"""
    return hashlib.sha256(f"{user_agent}|{accept_language}".encode("utf-8")).hexdigest()


def get_device_info(request: Request) -> DeviceInfo:
    """FastAPI dependency describing the calling device"""
    user_agent = request.headers.get("user-agent", "")
    device_type, browser, os_name = parse_user_agent(user_agent)
    return DeviceInfo(
        device_type=device_type,
        browser=browser,
        os=os_name,
        user_agent=user_agent[:500],
        ip_address=get_client_ip(request),
        fingerprint=device_fingerprint(user_agent, request.headers.get("accept-language", "")),
    )
