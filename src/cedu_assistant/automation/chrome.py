from __future__ import annotations

import os
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from selenium import webdriver
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service

try:  # pragma: no cover - import guard for static analysis
    from webdriver_manager.chrome import ChromeDriverManager
except ImportError as exc:  # pragma: no cover - missing dependency
    raise RuntimeError(
        "webdriver-manager is required for Chrome automation support."
    ) from exc

from cedu_assistant.automation.portal import PortalPage


class ChromeAutomationError(RuntimeError):
    """Raised when the automated Chrome session cannot be launched."""


@dataclass(slots=True)
class ChromeLauncher:
    """Start a dedicated Chrome instance and wrap it as a ``PortalPage``."""

    headless: bool = True
    driver_path: Optional[Path] = None
    selector_timeout: float = 10.0
    navigation_timeout: float = 30.0

    def launch(self, binary_path: str | Path | None = None) -> PortalPage:
        binary = self._resolve_binary(binary_path)
        options = Options()
        options.binary_location = str(binary)
        if self.headless:
            options.add_argument("--headless=new")
        options.add_argument("--window-size=1600,1000")
        options.add_argument("--mute-audio")
        options.add_argument("--no-first-run")
        options.add_argument("--no-default-browser-check")
        options.add_argument("--autoplay-policy=no-user-gesture-required")
        if sys.platform.startswith("linux"):
            options.add_argument("--disable-dev-shm-usage")

        try:
            driver_path = self.driver_path or Path(ChromeDriverManager().install())
            driver = webdriver.Chrome(service=Service(str(driver_path)), options=options)
        except (WebDriverException, ValueError, OSError) as exc:
            raise ChromeAutomationError(f"Failed to start Chrome from {binary}: {exc}") from exc

        return PortalPage(
            driver,
            selector_timeout=self.selector_timeout,
            navigation_timeout=self.navigation_timeout,
        )

    def _resolve_binary(self, binary_path: str | Path | None) -> Path:
        if binary_path:
            candidate = Path(binary_path).expanduser()
            if not candidate.exists():
                raise ChromeAutomationError(f"Browser executable not found: {candidate}")
            return candidate

        discovered = self._discover_chrome_binary()
        if discovered is None:
            raise ChromeAutomationError("Google Chrome executable not found. Set the browser path first.")
        return discovered

    @staticmethod
    def _discover_chrome_binary() -> Optional[Path]:
        candidates: list[Path] = []
        if os.name == "nt":
            candidates.extend(
                [
                    Path("C:/Program Files/Google/Chrome/Application/chrome.exe"),
                    Path("C:/Program Files (x86)/Google/Chrome/Application/chrome.exe"),
                ]
            )
        else:
            for executable in ("google-chrome", "chromium-browser", "chromium"):
                located = shutil.which(executable)
                if located:
                    candidates.append(Path(located))

        for candidate in candidates:
            if candidate.exists():
                return candidate
        return None
