"""
Utility functions for turnstream.
"""
import asyncio
import inspect
import json
import time
import uuid
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

T = TypeVar('T')


def truncate_string(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """
    Truncate a string to a maximum length.

    Args:
        text: The string to truncate
        max_length: Maximum length of the output string
        suffix: Suffix to append when truncating

    Returns:
        Truncated string
    """
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix


def generate_id(prefix: str = "msg") -> str:
    """
    Generate a unique identifier for messages and conversations.

    Args:
        prefix: Short prefix describing what the id is for

    Returns:
        Unique id string (e.g. "msg-1f0c2a9b4d7e")
    """
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def safe_json_loads(value: str, default: Any = None) -> Any:
    """
    Parse a JSON string, returning a default instead of raising.

    Args:
        value: The string to parse
        default: Value returned when parsing fails

    Returns:
        The decoded value, or ``default``
    """
    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError, ValueError):
        return default


def format_json(value: Any, indent: int = 2) -> str:
    """
    Format a value as JSON for display, falling back to ``str``.

    Args:
        value: Value to format
        indent: Indentation width

    Returns:
        Formatted string
    """
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, indent=indent, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: tuple = (Exception,),
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
) -> Callable:
    """
    Decorator for retrying a function on failure.

    Args:
        max_attempts: Maximum number of attempts
        delay: Initial delay between retries in seconds
        backoff: Multiplier for delay after each retry
        exceptions: Tuple of exceptions to catch
        should_retry: Optional predicate; errors it rejects are raised immediately
        on_retry: Optional callback invoked with (attempt, error) before sleeping

    Returns:
        Decorated function
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            current_delay = delay
            last_exception = None

            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    if should_retry is not None and not should_retry(e):
                        raise
                    if attempt < max_attempts:
                        if on_retry is not None:
                            on_retry(attempt, e)
                        time.sleep(current_delay)
                        current_delay *= backoff

            raise last_exception  # type: ignore

        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> T:
            current_delay = delay
            last_exception = None

            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    if should_retry is not None and not should_retry(e):
                        raise
                    if attempt < max_attempts:
                        if on_retry is not None:
                            on_retry(attempt, e)
                        await asyncio.sleep(current_delay)
                        current_delay *= backoff

            raise last_exception  # type: ignore

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return wrapper

    return decorator
