"""
Feature Flags Configuration

Centralized feature flag management for the grading engine.
All feature flags are loaded from environment variables.
"""
import os

from dotenv import load_dotenv

load_dotenv()


def get_bool_env(key: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


class FeatureFlags:
    """
    Feature flags for the grading engine.
    
    To add a new feature flag:
    1. Add it here as a class property
    2. Load it from environment variable
    3. Use it in your code
    """
    
    # Rubric Store: seed the starter rubric the first time an
    # organization without rubrics lists them
    FEATURE_AUTO_SEED_DEFAULT_RUBRIC: bool = get_bool_env('FEATURE_AUTO_SEED_DEFAULT_RUBRIC', False)
    
    # HTTP surface
    FEATURE_RUBRIC_API: bool = get_bool_env('FEATURE_RUBRIC_API', True)
    FEATURE_GRADING_API: bool = get_bool_env('FEATURE_GRADING_API', True)
    
    @classmethod
    def is_enabled(cls, flag_name: str) -> bool:
        """Check if a feature flag is enabled by name."""
        return getattr(cls, flag_name, False)
    
    @classmethod
    def get_all_flags(cls) -> dict:
        """Get all feature flags as a dictionary."""
        return {
            key: value
            for key, value in cls.__dict__.items()
            if not key.startswith('_') and isinstance(value, bool)
        }


# Singleton instance for easy importing
feature_flags = FeatureFlags()
