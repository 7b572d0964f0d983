"""
Model profile resolution.

Profiles live in ``~/.webpilot/ai-profiles.json``::

    {
      "default": "work",
      "profiles": {
        "work": {"provider": "openai", "model": "gpt-5", "api_key_env": "WORK_OPENAI_KEY"},
        "local": {"provider": "openai", "model": "llama3", "base_url": "http://localhost:11434/v1"}
      }
    }

Selection precedence is the explicit argument, then ``WEBPILOT_AI_MODEL_PROFILE``,
then the config ``default``, then an empty profile built from the
environment alone. Environment variables override the selected profile.
"""

import json
import logging
import os
from pathlib import Path
from typing import Callable, Dict, Optional

from pydantic import BaseModel, Field, ValidationError

from webpilot.agents.exceptions import ModelProfileError

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = "openai"
DEFAULT_MODEL = "gpt-5"

PROFILE_ENV = "WEBPILOT_AI_MODEL_PROFILE"
MODEL_ENV = "WEBPILOT_AI_MODEL"
PROVIDER_ENV = "WEBPILOT_AI_PROVIDER"
MAX_TOKENS_ENV = "WEBPILOT_AI_MAX_TOKENS"


class ModelProfile(BaseModel):
    """Connection settings required to invoke an LLM provider."""

    name: str = ""
    provider: str = ""
    model: str = ""
    base_url: str = ""
    api_key: str = ""
    api_key_env: str = ""
    max_tokens: int = Field(0, ge=0)
    system_prompt: str = ""


class ProfileConfig(BaseModel):
    default: str = ""
    profiles: Dict[str, Optional[ModelProfile]] = Field(default_factory=dict)

    def profile(self, name: str) -> Optional[ModelProfile]:
        found = self.profiles.get(name)
        if found is None:
            return None
        return found.model_copy(update={"name": name})


def default_config_path() -> Optional[Path]:
    """Standard location for AI model profiles, or None if there is no home directory."""
    try:
        home = Path.home()
    except RuntimeError:
        return None
    return home / ".webpilot" / "ai-profiles.json"


def _read_text(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


class ProfileLoader:
    """
    Resolves model profiles from an on-disk config file and environment overrides.

    Args:
        config_path: Alternate config file; defaults to ``default_config_path()``.
        getenv: Environment lookup, ``os.getenv`` by default.
        read_file: File reader returning text, used by tests to avoid disk access.
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        getenv: Optional[Callable[[str], Optional[str]]] = None,
        read_file: Optional[Callable[[str], str]] = None,
    ):
        self.config_path = config_path
        self._getenv = getenv or os.getenv
        self._read_file = read_file or _read_text

    def _env(self, key: str) -> str:
        return (self._getenv(key) or "").strip()

    def _resolve_path(self) -> str:
        if self.config_path and self.config_path.strip():
            return self.config_path
        path = default_config_path()
        return str(path) if path else ""

    def read_config(self, path: str) -> Optional[ProfileConfig]:
        """Parse the config file; a missing file yields None, a malformed one raises."""
        if not path.strip():
            return None
        try:
            data = self._read_file(path)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise ModelProfileError(f"read model profile config: {e}", config_path=path) from e

        try:
            return ProfileConfig.model_validate(json.loads(data))
        except (json.JSONDecodeError, ValidationError) as e:
            raise ModelProfileError(f"decode model profile config: {e}", config_path=path) from e

    def load(self, selection: str = "") -> ModelProfile:
        """
        Resolve the requested model profile.

        Raises:
            ModelProfileError: If the selected or default profile does not exist,
                or the config file cannot be read or decoded.
        """
        path = self._resolve_path()
        config = self.read_config(path)

        selection = (selection or "").strip()
        if not selection:
            selection = self._env(PROFILE_ENV)

        profile: Optional[ModelProfile] = None
        if selection and config is not None:
            profile = config.profile(selection)
            if profile is None:
                raise ModelProfileError(f"model profile {selection!r} not found in {path}", config_path=path)

        if profile is None and config is not None and config.default:
            profile = config.profile(config.default)
            selection = config.default
            if profile is None:
                raise ModelProfileError(
                    f"default model profile {config.default!r} not found in {path}", config_path=path
                )

        if profile is None:
            profile = ModelProfile(name=selection)

        profile = self._apply_env_overrides(profile)
        profile = self._apply_defaults(profile)
        logger.debug(f"Resolved model profile {profile.name or '<env>'}: {profile.provider}/{profile.model}")
        return profile

    def _apply_env_overrides(self, profile: ModelProfile) -> ModelProfile:
        updates = {}

        # API key: explicit config value, then the env var named by api_key_env, then OPENAI_API_KEY
        if not profile.api_key.strip():
            api_key = self._env(profile.api_key_env.strip()) if profile.api_key_env.strip() else ""
            if not api_key:
                api_key = self._env("OPENAI_API_KEY")
            if api_key:
                updates["api_key"] = api_key

        base_url = self._env("OPENAI_API_BASE") or self._env("OPENAI_BASE_URL")
        if base_url:
            updates["base_url"] = base_url

        model = self._env(MODEL_ENV)
        if model:
            updates["model"] = model

        provider = self._env(PROVIDER_ENV)
        if provider:
            updates["provider"] = provider

        raw_max = self._env(MAX_TOKENS_ENV)
        if raw_max:
            try:
                parsed = int(raw_max)
            except ValueError:
                parsed = -1
            if parsed >= 0:
                updates["max_tokens"] = parsed
            else:
                logger.warning(f"Ignoring invalid {MAX_TOKENS_ENV}={raw_max!r}")

        return profile.model_copy(update=updates) if updates else profile

    @staticmethod
    def _apply_defaults(profile: ModelProfile) -> ModelProfile:
        updates = {}
        if not profile.provider.strip():
            updates["provider"] = DEFAULT_PROVIDER
        if not profile.model.strip():
            updates["model"] = DEFAULT_MODEL
        return profile.model_copy(update=updates) if updates else profile
