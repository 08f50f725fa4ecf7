"""
Heuristic user-agent classification for session device metadata.

Plain substring checks on the lower-cased header. Anything unrecognised
falls back to ``"Unknown"`` (browser/OS) or ``"Desktop"`` (device type).
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DeviceFingerprint:
    device_type: str
    browser: str
    os: str


def _device_type(ua: str) -> str:
    if "mobile" in ua:
        return "Mobile"
    if "tablet" in ua or "ipad" in ua:
        return "Tablet"
    return "Desktop"


def _browser(ua: str) -> str:
    # Edge and Chrome both advertise "chrome"; Chrome also advertises "safari".
    if "edg" in ua:
        return "Edge"
    if "chrome" in ua:
        return "Chrome"
    if "firefox" in ua:
        return "Firefox"
    if "safari" in ua:
        return "Safari"
    return "Unknown"


def _os(ua: str) -> str:
    if "windows" in ua:
        return "Windows"
    if "android" in ua:
        return "Android"
    if "iphone" in ua or "ipad" in ua or "ios" in ua:
        return "iOS"
    if "mac" in ua:
        return "macOS"
    if "linux" in ua:
        return "Linux"
    return "Unknown"


def parse_user_agent(user_agent: str | None) -> DeviceFingerprint:
    if not user_agent or user_agent == "Unknown":
        return DeviceFingerprint(device_type="Unknown", browser="Unknown", os="Unknown")
    ua = user_agent.lower()
    return DeviceFingerprint(device_type=_device_type(ua), browser=_browser(ua), os=_os(ua))
