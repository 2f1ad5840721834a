from brainvault.config.loader import get_config_path, load_config, save_config
from brainvault.config.schema import Config, ConsolidationConfig, LoggingConfig

__all__ = [
    "Config",
    "ConsolidationConfig",
    "LoggingConfig",
    "get_config_path",
    "load_config",
    "save_config",
]
