import os
import yaml
import keyring

from settings_schema import default_settings, sensitive_keys, validate_settings

KEYRING_PLACEHOLDER = "<keyring>"


class YamlConfig:
    """Validated ``settings.yaml`` storage for the plan engine.

    Everything read or written is checked against ``SettingsSchema``. With
    ``ENCRYPT_SETTINGS=1`` the schema's sensitive fields go to the system
    keyring and the file keeps a placeholder in their place.
    """

    SENSITIVE_KEYS = sensitive_keys()

    def __init__(self, path: str = "settings.yaml", service: str = "planforge") -> None:
        self.path = path
        self.encrypt = os.environ.get("ENCRYPT_SETTINGS") == "1"
        self.service = service

    def _read(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}

    def load(self) -> dict:
        """Return the settings stored in the file, raising ``ValueError`` if invalid."""
        data = self._read()
        for key in self.SENSITIVE_KEYS & data.keys():
            if data[key] != KEYRING_PLACEHOLDER:
                continue
            # without the keyring the placeholder must not pass for a value
            secret = keyring.get_password(self.service, key) if self.encrypt else None
            if secret is None:
                data.pop(key)
            else:
                data[key] = secret
        validate_settings(data)
        return data

    def load_with_defaults(self) -> dict:
        return {**default_settings(), **self.load()}

    def save(self, data: dict) -> None:
        validate_settings(data)
        out = dict(data)
        if self.encrypt:
            for key in self.SENSITIVE_KEYS & out.keys():
                keyring.set_password(self.service, key, str(out[key]))
                out[key] = KEYRING_PLACEHOLDER
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(out, f)
