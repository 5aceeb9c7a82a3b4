from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

from cedu_assistant.models import UserConfig

DEFAULT_APP_NAME = os.getenv("APP_NAME", "八大员继续教育自动化助手")
DOCUMENTS_PATH = Path(os.path.expanduser("~")) / "Documents"
DEFAULT_SETTINGS_DIR = Path(os.getenv("APP_DATA_DIR", str(DOCUMENTS_PATH / DEFAULT_APP_NAME))).expanduser()
DEFAULT_SETTINGS_FILENAME = "user_settings.json"
USER_CONFIG_KEY = "userConfig"


def strip_quotes(value: str) -> str:
	"""Remove one pair of surrounding quotes pasted along with a Windows path."""
	cleaned = value.strip()
	for quote in ('"', "'"):
		if len(cleaned) >= 2 and cleaned.startswith(quote) and cleaned.endswith(quote):
			return cleaned[1:-1]
	return cleaned


@dataclass
class UserSettingsStore:
	"""Persist the flat user configuration record in a JSON file."""

	settings_dir: Path = field(default_factory=lambda: DEFAULT_SETTINGS_DIR)
	settings_filename: str = DEFAULT_SETTINGS_FILENAME
	_data: Dict[str, Any] = field(init=False, default_factory=dict)
	settings_file: Path = field(init=False)

	def __post_init__(self) -> None:
		self.settings_dir = Path(self.settings_dir).expanduser()
		self.settings_dir.mkdir(parents=True, exist_ok=True)
		self.settings_file = self.settings_dir / self.settings_filename
		self.reload()

	# ------------------------------------------------------------------
	# Public API
	# ------------------------------------------------------------------
	@property
	def data(self) -> Dict[str, Any]:
		return dict(self._data)

	def get(self, key: str, default: Any = None) -> Any:
		return self._data.get(key, default)

	def reload(self) -> None:
		self._data = self._load_json(self.settings_file)

	def load_user_config(self) -> UserConfig:
		record = self._data.get(USER_CONFIG_KEY)
		if not isinstance(record, dict):
			return UserConfig()
		return UserConfig.from_record(record)

	def save_user_config(self, config: UserConfig) -> UserConfig:
		"""Overwrite the stored record wholesale and return what was written."""
		cleaned = UserConfig(
			browser_executable_path=strip_quotes(config.browser_executable_path),
			phone=config.phone.strip(),
			password=config.password,
			extra=dict(config.extra),
		)
		new_data = dict(self._data)
		new_data[USER_CONFIG_KEY] = cleaned.to_record()
		self._data = new_data
		self._persist()
		return cleaned

	# ------------------------------------------------------------------
	# Internal helpers
	# ------------------------------------------------------------------
	def _persist(self) -> None:
		with self.settings_file.open("w", encoding="utf-8") as handle:
			json.dump(self._data, handle, indent=2, ensure_ascii=False)

	@staticmethod
	def _load_json(path: Path) -> Dict[str, Any]:
		try:
			if path.exists():
				with path.open("r", encoding="utf-8") as handle:
					loaded = json.load(handle)
				if isinstance(loaded, dict):
					return loaded
		except (OSError, ValueError):
			pass
		return {}
