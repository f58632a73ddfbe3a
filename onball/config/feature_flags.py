"""
Feature Flags Configuration

Centralized feature flag management for the league engine.
All feature flags are loaded from environment variables.
"""
import os

from dotenv import load_dotenv

from onball.config.settings import ENV_FILE

load_dotenv(dotenv_path=ENV_FILE)


def get_bool_env(key: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


class FeatureFlags:
    """
    Feature flags for the application.

    To add a new feature flag:
    1. Add it here as a class property
    2. Load it from environment variable
    3. Use it in your code
    """

    # Team generation: call the external balancing service before the local fallback
    FEATURE_REMOTE_TEAM_GENERATION: bool = get_bool_env('FEATURE_REMOTE_TEAM_GENERATION', True)

    # Ledger reversal: refuse match reversals whose history record cannot be located
    FEATURE_STRICT_MATCH_REVERSAL: bool = get_bool_env('FEATURE_STRICT_MATCH_REVERSAL', False)

    @classmethod
    def is_enabled(cls, flag_name: str) -> bool:
        """Check if a feature flag is enabled."""
        return bool(getattr(cls, flag_name, False))

    @classmethod
    def get_all_flags(cls) -> dict:
        """Get all feature flags as a dictionary."""
        return {
            key: value for key, value in vars(cls).items()
            if key.startswith('FEATURE_')
        }


feature_flags = FeatureFlags()
