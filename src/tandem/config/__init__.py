from tandem.config.settings import ConfigError, Settings, get_settings, load_settings

__all__ = ["Settings", "ConfigError", "load_settings", "get_settings"]
