"""Pydantic models for the configuration payloads pushed to clients."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class FeatureConfig(BaseModel):
    """Feature-flag payload served by the upstream config service."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    feature_flag: bool
    logging_level: str
    maintenance_mode: bool
    api_rate_limit: int = Field(ge=0)


class BallConfig(BaseModel):
    """Visual payload for the ball page."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    ball_color: str
    ball_size: int = Field(gt=0)
    ball_speed: int = Field(ge=0)
    number_of_balls: int = Field(ge=0)


CONFIG_SCHEMAS: dict[str, type[BaseModel]] = {
    "feature": FeatureConfig,
    "ball": BallConfig,
}


def get_config_model(name: str) -> type[BaseModel]:
    key = name.strip().lower()
    try:
        return CONFIG_SCHEMAS[key]
    except KeyError:
        known = ", ".join(sorted(CONFIG_SCHEMAS))
        raise ValueError(f"unknown config schema {name!r} (expected one of: {known})") from None


def ball_color_for(config: BaseModel | None) -> str:
    """Colour the page renders for a given config snapshot."""
    if isinstance(config, BallConfig):
        return config.ball_color
    if isinstance(config, FeatureConfig) and config.feature_flag:
        return "green"
    return "blue"
