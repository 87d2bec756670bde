import logging
import traceback
from typing import Optional, Union


DEFAULT_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'


def _resolve_level(level: Union[int, str, None]) -> int:
	if level is None:
		return logging.INFO
	if isinstance(level, str):
		resolved = logging.getLevelName(level.upper())
		return resolved if isinstance(resolved, int) else logging.INFO
	return level


def setup_logging(level: Union[int, str, None] = None, fmt: Optional[str] = None, log_file: Optional[str] = None) -> None:
	"""Configure root logging once.

	Later calls keep the existing handlers and only apply an explicitly
	requested level. If fmt is not provided, a sensible default is used.
	"""
	root = logging.getLogger()
	if root.handlers:
		if level is not None:
			root.setLevel(_resolve_level(level))
		return
	format_str = fmt or DEFAULT_FORMAT
	handlers = [logging.StreamHandler()]
	if log_file:
		handlers.append(logging.FileHandler(log_file))
	logging.basicConfig(level=_resolve_level(level), format=format_str, handlers=handlers)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	"""Return a module/logger by name, after ensuring logging is configured."""
	setup_logging()
	return logging.getLogger(name) if name else logging.getLogger(__name__)


def log_exception(logger: logging.Logger, message: str = "An error occurred", exc_info: Exception = None) -> None:
	"""Centralized exception logging with full traceback.

	Args:
		logger: Logger instance to use
		message: Custom error message to log before the traceback
		exc_info: Exception instance (if None, uses current exception context)
	"""
	logger.error(message)
	if exc_info is not None:
		logger.error(f"Exception type: {type(exc_info).__name__}")
		logger.error(f"Exception message: {getattr(exc_info, 'message', str(exc_info))}")
	logger.error("Full traceback:")
	logger.error(traceback.format_exc())
