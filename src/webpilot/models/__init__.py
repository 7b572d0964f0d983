"""Models module for WebPilot: provider adapters, harmonized responses and profiles."""

from .response_models import (
    HarmonizedResponse,
    ResponseMetadata,
    ToolCall,
    ToolResponseMessage,
    UsageInfo,
)
from .profile import ModelProfile, ProfileLoader

__all__ = [
    # Response models
    "HarmonizedResponse",
    "ResponseMetadata",
    "UsageInfo",
    "ToolCall",
    "ToolResponseMessage",
    # Profiles
    "ModelProfile",
    "ProfileLoader",
]
