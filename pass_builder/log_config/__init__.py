from .logging_config import LOGGING_CONFIG, build_logging_config, configure_logging

__all__ = ['LOGGING_CONFIG', 'build_logging_config', 'configure_logging']
