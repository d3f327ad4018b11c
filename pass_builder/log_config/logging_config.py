# pass_builder/log_config/logging_config.py

"""
Logging configuration for pass builds.

Dictionary-based setup for Python's logging module. Build progress goes to
the console (stderr); an optional rotating file keeps a history of builds.
"""

import copy
import logging
import logging.config
import logging.handlers
from pathlib import Path
from typing import Optional

LOGGING_CONFIG = {
    'version': 1,
    'disable_existing_loggers': False,

    'formatters': {
        'detailed': {
            'format': '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s'
        },
        'simple': {
            'format': '%(asctime)s [%(levelname)s] %(message)s'
        }
    },

    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
            'level': 'DEBUG',
            'stream': 'ext://sys.stderr',
        }
    },

    'loggers': {
        'pass_builder': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False
        },
        # pyasn1 debug output is only useful when debugging containers
        'pyasn1': {
            'handlers': ['console'],
            'level': 'WARNING',
            'propagate': False
        }
    },

    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    }
}


def build_logging_config(verbose: bool = False, log_file: Optional[str] = None) -> dict:
    """
    Return a copy of LOGGING_CONFIG adjusted for this run.

    Args:
        verbose: Lower the package logger to DEBUG
        log_file: Also write detailed records to this rotating file
    """
    config = copy.deepcopy(LOGGING_CONFIG)

    if verbose:
        config['loggers']['pass_builder']['level'] = 'DEBUG'

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        config['handlers']['file'] = {
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': str(log_file),
            'formatter': 'detailed',
            'level': 'DEBUG',
            'maxBytes': 5242880,    # 5MB
            'backupCount': 2,
            'encoding': 'utf-8'
        }
        config['loggers']['pass_builder']['handlers'].append('file')

    return config


def configure_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    """Apply the logging configuration."""
    logging.config.dictConfig(build_logging_config(verbose=verbose, log_file=log_file))
