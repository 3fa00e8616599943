"""Credentials for the three remote services.

Lookup order: environment variable WORKFOCUS_<KEY> (dots become underscores),
then the credentials file next to the config. The file is kept at mode 0600.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from workfocus.core import AuthError, ConfigError

KNOWN_KEYS = ("tracker.pat", "timer.token", "calendar.token")


def env_name(key: str) -> str:
    return "WORKFOCUS_" + key.replace(".", "_").replace("-", "_").upper()


class FileSecretStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"Cannot read credentials file {self.path}: {exc}", path=str(self.path)) from exc
        if not isinstance(data, dict):
            raise ConfigError(f"Credentials file {self.path} must be a mapping", path=str(self.path))
        return data

    def _save(self, data: Dict[str, Any]) -> None:
        if not data:
            if self.path.exists():
                self.path.unlink()
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(yaml.safe_dump(data, allow_unicode=True), encoding="utf-8")
        os.chmod(self.path, 0o600)

    def find(self, key: str) -> Optional[str]:
        value = os.environ.get(env_name(key), "").strip()
        if value:
            return value
        value = str(self._load().get(key) or "").strip()
        return value or None

    def get(self, key: str) -> str:
        value = self.find(key)
        if not value:
            raise AuthError(
                f"No credential for {key}; run `workfocus auth set {key}` or export {env_name(key)}",
                source=key.split(".")[0],
            )
        return value

    def set(self, key: str, secret: str) -> None:
        if key not in KNOWN_KEYS:
            raise ConfigError(f"Unknown credential {key!r}; expected one of {', '.join(KNOWN_KEYS)}", key=key)
        data = self._load()
        secret = (secret or "").strip()
        if secret:
            data[key] = secret
        else:
            data.pop(key, None)
        self._save(data)


__all__ = ["FileSecretStore", "KNOWN_KEYS", "env_name"]
