import logging
import logging.handlers
from datetime import datetime, timedelta
from pathlib import Path
import time

from inventory_ledger.config import config

NAMESPACE = 'inventory_ledger'

class Logger:
    """Named loggers for the Inventory Ledger.

    Every component logs to ``<directory>/<name>.log`` through a rotating
    file handler; console output is shared and optional. Loggers live under
    the ``inventory_ledger`` namespace and do not propagate to the root logger.
    """

    _instance = None
    _loggers = {}

    def __new__(cls):
        """Singleton pattern implementation."""
        if cls._instance is None:
            cls._instance = super(Logger, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        settings = config.log_config
        self._level = getattr(logging, settings['level'].upper(), logging.INFO)
        self._formatter = logging.Formatter(settings['format'])
        self._max_bytes = settings['max_size_mb'] * 1024 * 1024
        self._backup_count = settings['backup_count']

        self._log_dir = Path(settings['directory'])
        self._log_dir.mkdir(parents=True, exist_ok=True)

        self._console = None
        if settings['console_output']:
            self._console = logging.StreamHandler()
            self._console.setFormatter(self._formatter)

        self._app_logger = self.get_logger('app')
        self._initialized = True

    def get_logger(self, name):
        """Get the logger for a component, creating its log file on first use.

        Args:
            name: Component name, e.g. 'checkout'

        Returns:
            Configured logger instance
        """
        if name in self._loggers:
            return self._loggers[name]

        component_logger = logging.getLogger(f"{NAMESPACE}.{name}")
        component_logger.setLevel(self._level)
        component_logger.propagate = False

        for handler in component_logger.handlers[:]:
            component_logger.removeHandler(handler)

        file_handler = logging.handlers.RotatingFileHandler(
            self._log_dir / f"{name}.log",
            maxBytes=self._max_bytes,
            backupCount=self._backup_count
        )
        file_handler.setFormatter(self._formatter)
        component_logger.addHandler(file_handler)

        if self._console is not None:
            component_logger.addHandler(self._console)

        self._loggers[name] = component_logger
        return component_logger

    def set_level(self, level, names=None):
        """Change the level of existing loggers, all of them by default."""
        for name, component_logger in self._loggers.items():
            if names is None or name in names:
                component_logger.setLevel(level)

    def log_exception(self, logger_name, exception, message=None):
        """Log an unexpected error with its traceback.

        Args:
            logger_name: Component name
            exception: The exception being handled
            message: Optional context prefix
        """
        text = f"{message}: {exception}" if message else str(exception)
        self.get_logger(logger_name).error(text, exc_info=exception)

    @property
    def app_logger(self):
        return self._app_logger

    def batch_start_log(self, process_name, additional_info=None):
        """Log the start of a batch process.

        Returns:
            Dictionary to pass to batch_end_log
        """
        batch_logger = self.get_logger('batch')
        batch_logger.info(f"Starting batch process: {process_name}")
        if additional_info:
            batch_logger.info(f"Process info: {additional_info}")

        return {
            'process_name': process_name,
            'start_time': datetime.now(),
            'started': time.monotonic(),
            'additional_info': additional_info
        }

    def batch_end_log(self, log_info, success=True, result_info=None):
        """Log the end of a batch process.

        Returns:
            Elapsed time as a timedelta
        """
        batch_logger = self.get_logger('batch')
        process_name = log_info.get('process_name', 'Unknown')
        duration = timedelta(seconds=time.monotonic() - log_info.get('started', time.monotonic()))

        if success:
            batch_logger.info(f"Completed batch process: {process_name} in {duration}")
        else:
            batch_logger.error(f"Failed batch process: {process_name} after {duration}")

        if result_info:
            batch_logger.info(f"Process results: {result_info}")

        return duration

# Global logger instance
logger = Logger()

def get_logger(name):
    """Get a logger with the specified name."""
    return logger.get_logger(name)

def log_exception(logger_name, exception, message=None):
    logger.log_exception(logger_name, exception, message)
