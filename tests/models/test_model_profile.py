"""
Tests for the webpilot.models.profile module.

This module tests:
- Profile selection precedence (argument, environment, config default)
- Environment overrides and defaults
- Error reporting for missing profiles and malformed config files
"""

import json

import pytest

from webpilot.agents.exceptions import ModelProfileError
from webpilot.models.profile import DEFAULT_MODEL, DEFAULT_PROVIDER, ProfileLoader

CONFIG = {
    "default": "work",
    "profiles": {
        "work": {"provider": "openai", "model": "gpt-5", "api_key_env": "WORK_KEY", "system_prompt": "Be brief."},
        "local": {"provider": "openai", "model": "llama3", "base_url": "http://localhost:11434/v1", "api_key": "k"},
        "empty": None,
    },
}


def make_loader(config=CONFIG, env=None, raw=None):
    env = env or {}

    def read_file(path):
        if config is None and raw is None:
            raise FileNotFoundError(path)
        return raw if raw is not None else json.dumps(config)

    return ProfileLoader(config_path="/cfg/ai-profiles.json", getenv=env.get, read_file=read_file)


# =============================================================================
# Selection Tests
# =============================================================================

class TestProfileSelection:
    """Tests for which profile gets loaded."""

    def test_explicit_selection(self):
        profile = make_loader().load("local")

        assert profile.name == "local"
        assert profile.model == "llama3"
        assert profile.base_url == "http://localhost:11434/v1"
        assert profile.api_key == "k"

    def test_env_selection(self):
        profile = make_loader(env={"WEBPILOT_AI_MODEL_PROFILE": "local"}).load()

        assert profile.name == "local"

    def test_explicit_beats_env(self):
        profile = make_loader(env={"WEBPILOT_AI_MODEL_PROFILE": "local"}).load("work")

        assert profile.name == "work"

    def test_config_default(self):
        profile = make_loader(env={"WORK_KEY": "secret"}).load()

        assert profile.name == "work"
        assert profile.api_key == "secret"
        assert profile.system_prompt == "Be brief."

    def test_missing_profile(self):
        with pytest.raises(ModelProfileError, match="model profile 'nope' not found"):
            make_loader().load("nope")

    def test_null_profile_entry_is_missing(self):
        with pytest.raises(ModelProfileError):
            make_loader().load("empty")

    def test_missing_default_profile(self):
        with pytest.raises(ModelProfileError, match="default model profile 'ghost'"):
            make_loader(config={"default": "ghost", "profiles": {}}).load()

    def test_no_config_file_uses_environment(self):
        profile = make_loader(config=None, env={"OPENAI_API_KEY": "env-key"}).load()

        assert profile.name == ""
        assert profile.provider == DEFAULT_PROVIDER
        assert profile.model == DEFAULT_MODEL
        assert profile.api_key == "env-key"

    def test_selection_without_config_file(self):
        profile = make_loader(config=None).load("anything")

        assert profile.name == "anything"

    def test_malformed_config(self):
        with pytest.raises(ModelProfileError, match="decode model profile config"):
            make_loader(raw="{not json").load()

    def test_invalid_max_tokens_in_config(self):
        bad = {"profiles": {"x": {"max_tokens": -5}}}

        with pytest.raises(ModelProfileError):
            make_loader(config=bad).load("x")


# =============================================================================
# Override Tests
# =============================================================================

class TestEnvironmentOverrides:
    """Tests for environment variables applied after selection."""

    def test_model_provider_and_base_url(self):
        env = {
            "WEBPILOT_AI_MODEL": "gpt-4.1",
            "WEBPILOT_AI_PROVIDER": "openrouter",
            "OPENAI_BASE_URL": "https://proxy.test/v1",
        }
        profile = make_loader(env=env).load("work")

        assert profile.model == "gpt-4.1"
        assert profile.provider == "openrouter"
        assert profile.base_url == "https://proxy.test/v1"

    def test_api_key_env_before_openai_key(self):
        profile = make_loader(env={"WORK_KEY": "work", "OPENAI_API_KEY": "global"}).load("work")

        assert profile.api_key == "work"

    def test_explicit_api_key_not_overridden(self):
        profile = make_loader(env={"OPENAI_API_KEY": "global"}).load("local")

        assert profile.api_key == "k"

    def test_max_tokens(self):
        assert make_loader(env={"WEBPILOT_AI_MAX_TOKENS": "2048"}).load("work").max_tokens == 2048

    @pytest.mark.parametrize("raw", ["lots", "-1"])
    def test_invalid_max_tokens_env_is_ignored(self, raw):
        assert make_loader(env={"WEBPILOT_AI_MAX_TOKENS": raw}).load("work").max_tokens == 0
