from functools import lru_cache
from rich.console import Console

_verbose = False


@lru_cache(maxsize=1)
def get_console() -> Console:
    """Get or create the shared Console instance"""
    return Console(highlight=False)


def set_verbose(enabled: bool) -> None:
    """Toggle debug output for the whole run"""
    global _verbose
    _verbose = enabled


def is_verbose() -> bool:
    return _verbose


def debug(message: str) -> None:
    """Print a message only when verbose logging is enabled"""
    if _verbose:
        get_console().print(f"[dim]{message}[/]")
