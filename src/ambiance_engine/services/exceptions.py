"""Shared service-layer exceptions."""

from __future__ import annotations


class GenerationFailure(Exception):
    """Expected failure while generating a single container."""


class InvalidNoiseParameters(GenerationFailure):
    """Noise-mode parameters outside their valid domain."""


class MissingSourceError(GenerationFailure):
    """The media host has no source media for a referenced item."""
