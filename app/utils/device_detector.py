"""Derive device information from HTTP request headers.

The platform comes from the ``X-Platform`` header (``web`` or ``app``; anything
else counts as web). Device type and a human-readable name are guessed from
the User-Agent, and the client IP honours proxy headers.
"""

from __future__ import annotations

import re
from typing import Mapping

from fastapi import Request

from app.models.session import DeviceInfo, DeviceType, Platform

UNKNOWN = "Unknown"

_MOBILE_RE = re.compile(r"mobile|android|iphone|ipod|blackberry|iemobile|opera mini")
_TABLET_RE = re.compile(r"ipad|tablet|kindle|silk|playbook")
_BROWSER_RE = re.compile(r"windows|macintosh|linux|chrome|safari|firefox|edge|opera")

_IOS_VERSION_RE = re.compile(r"os (\d+)[_.](\d+)")
_ANDROID_VERSION_RE = re.compile(r"android (\d+\.?\d*)")
_SAMSUNG_RE = re.compile(r"sm-([a-z0-9]+)")
_PIXEL_RE = re.compile(r"pixel\s*(\d+[a-z]*)")
_MACOS_RE = re.compile(r"mac os x 10[._](\d+)")

# First match wins
_BROWSERS: tuple[tuple[str, str], ...] = (
    ("edg", "Edge"),
    ("chrome", "Chrome"),
    ("safari", "Safari"),
    ("firefox", "Firefox"),
    ("opr", "Opera"),
    ("opera", "Opera"),
    ("msie", "Internet Explorer"),
    ("trident", "Internet Explorer"),
)
_WINDOWS_VERSIONS: tuple[tuple[str, str], ...] = (
    ("windows nt 10", "Windows 10"),
    ("windows nt 11", "Windows 11"),
    ("windows nt 6.3", "Windows 8.1"),
    ("windows nt 6.2", "Windows 8"),
    ("windows nt 6.1", "Windows 7"),
)


def extract_platform(headers: Mapping[str, str]) -> Platform:
    value = (headers.get("x-platform") or "").strip().lower()
    if value == Platform.APP.value:
        return Platform.APP
    return Platform.WEB


def extract_client_ip(headers: Mapping[str, str], peer_host: str | None = None) -> str:
    """Client address: first X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = (headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip

    return peer_host or UNKNOWN


def detect_device_type(user_agent: str) -> DeviceType:
    ua = user_agent.lower()
    if _MOBILE_RE.search(ua):
        return DeviceType.MOBILE
    if _TABLET_RE.search(ua):
        return DeviceType.TABLET
    if _BROWSER_RE.search(ua):
        return DeviceType.WEB
    return DeviceType.UNKNOWN


def _browser_name(ua: str) -> str:
    for marker, name in _BROWSERS:
        if marker not in ua:
            continue
        # Chrome and Safari tokens also appear in Edge/Chrome user agents
        if name == "Chrome" and "edg" in ua:
            continue
        if name == "Safari" and "chrome" in ua:
            continue
        return name
    return "Unknown Browser"


def _os_name(ua: str) -> str:
    for marker, name in _WINDOWS_VERSIONS:
        if marker in ua:
            return name
    if "windows" in ua:
        return "Windows"

    match = _MACOS_RE.search(ua)
    if match:
        return f"macOS 10.{match.group(1)}"
    if "mac" in ua:
        return "macOS"

    if "linux" in ua:
        return "Linux"
    return "Unknown OS"


def _android_device(ua: str) -> str | None:
    match = _SAMSUNG_RE.search(ua)
    if match:
        return f"Samsung {match.group(1).upper()}"
    if "pixel" in ua:
        match = _PIXEL_RE.search(ua)
        return f"Pixel {match.group(1)}" if match else "Pixel"
    return None


def detect_device_name(user_agent: str) -> str:
    """Readable device label, e.g. ``iPhone (iOS 17.2)`` or ``Chrome on Windows 10``."""
    ua = user_agent.lower()

    for marker, label in (("iphone", "iPhone"), ("ipad", "iPad")):
        if marker in ua:
            match = _IOS_VERSION_RE.search(ua)
            return f"{label} (iOS {match.group(1)}.{match.group(2)})" if match else label

    if "android" in ua:
        match = _ANDROID_VERSION_RE.search(ua)
        version = match.group(1) if match else UNKNOWN
        device = _android_device(ua)
        return f"{device} (Android {version})" if device else f"Android {version}"

    return f"{_browser_name(ua)} on {_os_name(ua)}"


def detect_device(headers: Mapping[str, str], peer_host: str | None = None) -> DeviceInfo:
    """Build DeviceInfo from (case-insensitive) request headers."""
    user_agent = headers.get("user-agent") or UNKNOWN
    return DeviceInfo(
        name=detect_device_name(user_agent),
        type=detect_device_type(user_agent),
        platform=extract_platform(headers),
        user_agent=user_agent,
        ip_address=extract_client_ip(headers, peer_host),
    )


def detect_request_device(request: Request) -> DeviceInfo:
    return detect_device(request.headers, request.client.host if request.client else None)
