from __future__ import annotations

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the ambiance generation engine."""

    model_config = SettingsConfigDict(
        env_prefix="AMBIANCE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    max_placement_iterations: int = Field(
        default=10_000,
        ge=1,
        description="Upper bound on placement steps per container (or per track in independent mode).",
    )
    max_chunk_items: int = Field(
        default=1_000,
        ge=1,
        description="Upper bound on grains placed inside a single chunk window.",
    )
    max_chunk_windows: int = Field(
        default=10_000,
        ge=1,
        description="Upper bound on active/silence windows in chunk mode.",
    )
    max_noise_samples: int = Field(
        default=200_000,
        ge=1,
        description="Upper bound on noise evaluation points per container.",
    )
    max_pattern_repetitions: int = Field(
        default=10_000,
        ge=1,
        description="Upper bound on Euclidean pattern repetitions in tempo timing.",
    )
    skip_nudge_seconds: float = Field(
        default=0.1,
        gt=0.0,
        description="Cursor advance applied after skipping an item too short for a negative interval.",
    )
    zero_length_nudge_seconds: float = Field(
        default=0.01,
        gt=0.0,
        description="Minimum cursor progress when a placed grain has no length.",
    )
    min_chunk_seconds: float = Field(
        default=0.1,
        gt=0.0,
        description="Floor applied to varied chunk durations.",
    )
    stabilization_max_iterations: int = Field(default=5, ge=1, le=50)
    stabilization_light_iterations: int = Field(default=2, ge=1, le=50)
    crossfade_shape: int = Field(
        default=0,
        ge=0,
        le=6,
        description="Fade shape used for automatic crossfades between overlapping grains.",
    )
    default_seed: int | None = Field(
        default=None,
        description="Seed for generation contexts created without an explicit RNG.",
    )
    auto_stabilize: bool = Field(
        default=True,
        description="Run channel stabilization after every generation pass.",
    )

    @model_validator(mode="after")
    def _align_stabilization_limits(self) -> "Settings":
        if self.stabilization_light_iterations > self.stabilization_max_iterations:
            self.stabilization_light_iterations = self.stabilization_max_iterations
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
