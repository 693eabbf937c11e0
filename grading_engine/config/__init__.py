from grading_engine.config.feature_flags import FeatureFlags, feature_flags, get_bool_env

__all__ = ["FeatureFlags", "feature_flags", "get_bool_env"]
