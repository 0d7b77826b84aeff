"""Process id configuration."""
from src.process_config.process_config import ProcessConstants

__all__ = ["ProcessConstants"]
