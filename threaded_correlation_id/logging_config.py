from logging.config import dictConfig
from typing import Any, Dict

LOGGING: Dict[str, Any] = {
    'version': 1,
    'disable_existing_loggers': False,
    'filters': {
        'correlation_id': {'()': 'threaded_correlation_id.CorrelationIdFilter', 'default_value': '-'},
    },
    'formatters': {
        'full': {
            'class': 'logging.Formatter',
            'datefmt': '%H:%M:%S',
            'format': '%(asctime)s %(levelname)s [%(threadName)s] [%(correlation_id)s] %(name)s: %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'filters': ['correlation_id'],
            'formatter': 'full',
        },
    },
    'loggers': {
        'threaded_correlation_id': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': True,
        },
    },
}


def configure_logging(level: str = 'INFO') -> None:
    """Apply LOGGING, with the project logger at the given level."""
    config = {**LOGGING, 'loggers': {'threaded_correlation_id': {**LOGGING['loggers']['threaded_correlation_id']}}}
    config['loggers']['threaded_correlation_id']['level'] = level
    dictConfig(config)
