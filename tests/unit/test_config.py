"""Unit tests for GuardConfig."""

from pathlib import Path

import pytest

from askguard.config import DEFAULT_API_BASE_URL, GuardConfig
from askguard.storage import DEFAULT_STATE_FILE

ENV_VARS = [
    'ASKGUARD_API_URL',
    'ASKGUARD_TIER',
    'ASKGUARD_MODEL',
    'ASKGUARD_ENFORCE_RATE_LIMIT',
    'ASKGUARD_SAFETY_BUFFER_MS',
    'ASKGUARD_REFRESH_INTERVAL_MINUTES',
    'ASKGUARD_LIVENESS_INTERVAL_MINUTES',
    'ASKGUARD_HTTP_TIMEOUT',
    'ASKGUARD_TIMEZONE',
    'ASKGUARD_STATE_FILE',
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.mark.unit
class TestGuardConfig:
    def test_defaults(self):
        config = GuardConfig()

        assert config.api_base_url == DEFAULT_API_BASE_URL
        assert config.tier == 'unknown'
        assert config.safety_buffer_ms == 120_000
        assert config.refresh_interval_minutes == 5.0
        assert config.liveness_interval_minutes == 1.0
        assert config.timezone == 'America/Los_Angeles'
        assert config.state_file == DEFAULT_STATE_FILE

    def test_trailing_slash_is_stripped(self):
        assert GuardConfig(api_base_url='https://api.example.com/api/').api_base_url == 'https://api.example.com/api'

    @pytest.mark.parametrize(
        'kwargs',
        [{'refresh_interval_minutes': 0}, {'liveness_interval_minutes': -1}, {'safety_buffer_ms': -5}],
    )
    def test_rejects_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            GuardConfig(**kwargs)


@pytest.mark.unit
class TestFromEnv:
    """Test environment variable overrides"""

    def test_defaults_without_env(self, clean_env):
        assert GuardConfig.from_env() == GuardConfig()

    def test_reads_every_variable(self, clean_env, tmp_path):
        clean_env.setenv('ASKGUARD_API_URL', 'https://auth.example.com/api/')
        clean_env.setenv('ASKGUARD_TIER', 'tier2')
        clean_env.setenv('ASKGUARD_MODEL', 'gemini-2.5-pro')
        clean_env.setenv('ASKGUARD_ENFORCE_RATE_LIMIT', 'false')
        clean_env.setenv('ASKGUARD_SAFETY_BUFFER_MS', '30000')
        clean_env.setenv('ASKGUARD_REFRESH_INTERVAL_MINUTES', '10')
        clean_env.setenv('ASKGUARD_LIVENESS_INTERVAL_MINUTES', '0.5')
        clean_env.setenv('ASKGUARD_HTTP_TIMEOUT', '5')
        clean_env.setenv('ASKGUARD_TIMEZONE', 'UTC')
        clean_env.setenv('ASKGUARD_STATE_FILE', str(tmp_path / 'state.json'))

        config = GuardConfig.from_env()

        assert config.api_base_url == 'https://auth.example.com/api'
        assert config.tier == 'tier2'
        assert config.model == 'gemini-2.5-pro'
        assert config.enforce_rate_limit is False
        assert config.safety_buffer_ms == 30_000
        assert config.refresh_interval_minutes == 10.0
        assert config.liveness_interval_minutes == 0.5
        assert config.http_timeout == 5.0
        assert config.timezone == 'UTC'
        assert config.state_file == tmp_path / 'state.json'

    @pytest.mark.parametrize('value,expected', [('1', True), ('YES', True), ('on', True), ('0', False), ('no', False)])
    def test_boolean_parsing(self, clean_env, value, expected):
        clean_env.setenv('ASKGUARD_ENFORCE_RATE_LIMIT', value)

        assert GuardConfig.from_env().enforce_rate_limit is expected

    def test_explicit_state_file_wins(self, clean_env, tmp_path):
        clean_env.setenv('ASKGUARD_STATE_FILE', str(tmp_path / 'env.json'))

        config = GuardConfig.from_env(state_file=tmp_path / 'cli.json')

        assert config.state_file == Path(tmp_path / 'cli.json')
