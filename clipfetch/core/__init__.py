from .errors import ClipFetchError
from .security import prepare_url, sanitize_url, validate_url

__all__ = ["ClipFetchError", "prepare_url", "sanitize_url", "validate_url"]
