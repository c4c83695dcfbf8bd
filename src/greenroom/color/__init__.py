"""Chroma-key background color detection."""

from greenroom.color.sampler import (
    DEFAULT_COLOR,
    ColorSampler,
    ColorSamplingError,
    Patch,
    average_color,
    corner_patches,
    sample_background_color,
    timeline_offsets,
)

__all__ = [
    "DEFAULT_COLOR",
    "ColorSampler",
    "ColorSamplingError",
    "Patch",
    "average_color",
    "corner_patches",
    "sample_background_color",
    "timeline_offsets",
]
