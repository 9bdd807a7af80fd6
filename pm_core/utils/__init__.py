from .logger import get_logger, setup_logging, ColoredFormatter, JSONFormatter

__all__ = ["get_logger", "setup_logging", "ColoredFormatter", "JSONFormatter"]
