from .logging_config import setup_logging, get_logger, timed, PerfTimer

__all__ = ['setup_logging', 'get_logger', 'timed', 'PerfTimer']
