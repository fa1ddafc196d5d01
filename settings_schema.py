from pydantic import BaseModel, Field, ValidationError

class SettingsSchema(BaseModel):
    timezone: str = "UTC"
    language: str = "pt"
    weight_unit: str = "kg"
    refresh_interval_seconds: float = Field(30.0, gt=0)
    default_rest_seconds: int = Field(60, ge=0)
    session_ttl_days: int = Field(30, ge=1)
    password_pepper: str | bool = ""

def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
