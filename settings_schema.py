from typing import Literal

from pydantic import BaseModel, Field, ValidationError


class SettingsSchema(BaseModel):
    auto_generate_workouts: bool = True
    auto_cleanup_workouts: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    sqlite_timeout: float = Field(5.0, gt=0)
    api_token: str = Field("", json_schema_extra={"sensitive": True})
    app_version: str = "1.0.0"


def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))


def default_settings() -> dict:
    return SettingsSchema().model_dump()


def sensitive_keys() -> set[str]:
    """Fields flagged ``sensitive`` in the schema; these may live in a keyring."""
    return {
        name
        for name, field in SettingsSchema.model_fields.items()
        if (field.json_schema_extra or {}).get("sensitive")
    }
