"""Installation settings for Massive Fit.

Settings live in ``settings.yaml`` next to the database and are shared by
every account of the install. The password pepper is the only secret: with
``ENCRYPT_SETTINGS=1`` it is moved into the OS keyring and the YAML file only
records that a value exists.
"""

import os
import yaml
import keyring

APP_VERSION = "1.0.0"
SQLITE_PREFIX = "sqlite:///"


def database_path(default: str, db_url: str | None = None) -> str:
    """Resolve the sqlite file from ``db_url`` or the ``DB_URL`` variable."""
    url = db_url or os.environ.get("DB_URL")
    if url and url.startswith(SQLITE_PREFIX):
        return url[len(SQLITE_PREFIX):]
    return default


class YamlConfig:
    """Read and write ``settings.yaml``, keeping the pepper in the keyring."""

    SENSITIVE_KEYS = {
        "password_pepper",
    }

    def __init__(self, path: str = "settings.yaml") -> None:
        self.path = path
        self.encrypt = os.environ.get("ENCRYPT_SETTINGS") == "1"
        self.service = "massivefit"

    @classmethod
    def redact(cls, data: dict) -> dict:
        """Copy of ``data`` without the secret keys, safe to hand to clients."""
        return {k: v for k, v in data.items() if k not in cls.SENSITIVE_KEYS}

    def load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not self.encrypt:
            return data
        for key in self.SENSITIVE_KEYS & set(data):
            secret = keyring.get_password(self.service, key)
            if secret is None:
                # marker left without a keyring entry
                data.pop(key)
            else:
                data[key] = secret
        return data

    def save(self, data: dict) -> None:
        out = dict(data)
        if self.encrypt:
            for key in self.SENSITIVE_KEYS & set(out):
                keyring.set_password(self.service, key, str(out[key]))
                out[key] = True
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(out, f)
