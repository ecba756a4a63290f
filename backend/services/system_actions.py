"""
Simulated workstation actions exposed to the assistant as tools.

Nothing here touches the real machine: power, volume and theme are kept
as in-memory state and reported back. Voice changes and power-off are
forwarded to hooks (the server wires them to the session gateway) and run
after a short delay, so the tool reply goes out before the session is
reconfigured.
"""

from __future__ import annotations

import asyncio
import random
from typing import Any, Awaitable, Callable

from session.callbacks import LogSource, Severity
from spec import (
    LIVE_VOICES,
    SYSTEM_ACTION_HOOK_DELAY_S,
    SYSTEM_INTEGRITY_MAX,
    SYSTEM_INTEGRITY_MIN,
    SYSTEM_VOLUME_DEFAULT,
)

LogFn = Callable[[LogSource, Severity, str], None]
Hook = Callable[..., Awaitable[None]]

_WELL_KNOWN_SITES: dict[str, str] = {
    "youtube": "https://www.youtube.com",
    "google": "https://www.google.com",
    "netflix": "https://www.netflix.com",
    "spotify": "https://open.spotify.com",
}

# "blue" is an alias of the default cyan theme
_THEMES: dict[str, str] = {"cyan": "cyan", "blue": "cyan", "red": "red", "gold": "gold"}


def resolve_site_url(site_name: str) -> str:
    """Map a spoken site name to a URL."""
    site = site_name.strip().lower()
    for key, url in _WELL_KNOWN_SITES.items():
        if key in site:
            return url
    return site if site.startswith("http") else f"https://{site}"


class SystemActionService:
    """Tool handler for the default tool catalogue. Call as handler(name, args)."""

    def __init__(
        self,
        *,
        log: LogFn | None = None,
        on_voice_change: Hook | None = None,
        on_power_off: Hook | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._log = log or (lambda *_: None)
        self._on_voice_change = on_voice_change
        self._on_power_off = on_power_off
        self._rng = rng or random.Random()

        self.power_state: str = "ONLINE"
        self.volume: int = SYSTEM_VOLUME_DEFAULT
        self.theme: str = "cyan"
        self.integrity: int = 100

        self._hook_tasks: set[asyncio.Task[None]] = set()

        self._actions: dict[str, Callable[[dict[str, Any]], Any]] = {
            "scanSystem": self.scan_system,
            "checkIntegrity": self.check_integrity,
            "openWebsite": self.open_website,
            "openFile": self.open_file,
            "manageSystemPower": self.manage_power,
            "adjustVolume": self.adjust_volume,
            "changeTheme": self.change_theme,
            "changeVoice": self.change_voice,
        }

    async def __call__(self, name: str, args: dict[str, Any]) -> Any:
        action = self._actions.get(name)
        if action is None:
            raise ValueError(f"Unknown system action: {name}")
        return action(args)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def scan_system(self, args: dict[str, Any]) -> dict[str, Any]:
        mode = str(args.get("mode") or "FULL").upper()
        self._info(f"Initiating {mode.lower()} system diagnostic scan")
        self._info("Scanning file system... OK")
        self._info("Checking network protocols... OK")
        return {
            "status": "OPTIMAL",
            "mode": mode,
            "issues_found": 0,
            "details": "All systems functioning within normal parameters.",
        }

    def check_integrity(self, args: dict[str, Any]) -> dict[str, Any]:  # pylint: disable=unused-argument
        self.integrity = self._rng.randint(SYSTEM_INTEGRITY_MIN, SYSTEM_INTEGRITY_MAX)
        self._log(LogSource.SYSTEM, Severity.SUCCESS, f"Integrity verification complete: {self.integrity}%")
        return {"integrity": self.integrity, "status": "STABLE"}

    def open_website(self, args: dict[str, Any]) -> dict[str, Any]:
        site = str(args.get("siteName") or "").strip()
        if not site:
            raise ValueError("siteName is required")
        url = resolve_site_url(site)
        self._log(LogSource.SYSTEM, Severity.SUCCESS, f"Opening external site: {site}")
        return {"success": True, "url": url, "message": f"Opened {site}"}

    def open_file(self, args: dict[str, Any]) -> dict[str, Any]:
        file_name = str(args.get("fileName") or "").strip()
        if not file_name:
            raise ValueError("fileName is required")
        self._info(f"Searching file system for: {file_name}")
        self._log(LogSource.SYSTEM, Severity.SUCCESS, f"File located. Opening {file_name}")
        return {"success": True, "message": f"Opened {file_name}"}

    def manage_power(self, args: dict[str, Any]) -> dict[str, Any]:
        action = str(args.get("action") or "").upper()

        if action == "ON":
            if self.power_state == "ONLINE":
                self._info("Power check: systems are already online")
                return {"success": True, "status": "ONLINE", "message": "System is already running"}
            self.power_state = "ONLINE"
            return {"success": True, "status": "ONLINE"}

        if action == "OFF":
            self._log(LogSource.SYSTEM, Severity.WARNING, "Shutdown sequence initiated")
            self.power_state = "OFFLINE"
            self._defer(self._on_power_off)
            return {"success": True, "status": "STANDBY"}

        if action == "RESTART":
            self._log(LogSource.SYSTEM, Severity.WARNING, "Reboot command received. Cycling power")
            self.power_state = "ONLINE"
            self.volume = SYSTEM_VOLUME_DEFAULT
            return {"success": True, "status": "REBOOTING"}

        return {"success": True, "message": "Power command acknowledged."}

    def adjust_volume(self, args: dict[str, Any]) -> dict[str, Any]:
        level = args.get("level")
        vol = SYSTEM_VOLUME_DEFAULT if level is None else int(round(float(level)))
        self.volume = max(0, min(100, vol))
        self._log(LogSource.SYSTEM, Severity.SUCCESS, f"Adjusting master volume to {self.volume}%")
        return {"success": True, "new_level": self.volume}

    def change_theme(self, args: dict[str, Any]) -> dict[str, Any]:
        theme = _THEMES.get(str(args.get("theme") or "").lower())
        if theme is None:
            return {"success": False, "message": "Theme not available"}
        self.theme = theme
        return {"success": True, "theme": theme}

    def change_voice(self, args: dict[str, Any]) -> dict[str, Any]:
        voice = args.get("voiceName")
        if voice not in LIVE_VOICES:
            return {"success": False, "message": "Voice identity not recognized."}
        self._log(LogSource.SYSTEM, Severity.WARNING, f"Reinitializing audio synthesis: {voice}")
        self._defer(self._on_voice_change, voice)
        return {"success": True, "message": "Voice updated. Reconnecting."}

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _info(self, message: str) -> None:
        self._log(LogSource.SYSTEM, Severity.INFO, message)

    def _defer(self, hook: Hook | None, *args: Any) -> None:
        if hook is None:
            return

        async def _run() -> None:
            await asyncio.sleep(SYSTEM_ACTION_HOOK_DELAY_S)
            await hook(*args)

        task = asyncio.create_task(_run())
        self._hook_tasks.add(task)
        task.add_done_callback(self._hook_tasks.discard)
