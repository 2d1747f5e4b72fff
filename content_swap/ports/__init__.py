# content_swap/ports/__init__

__all__ = [
    "database",
    "validator",
    "swapper",
    "recorder",
    "staging",
    "lock",
]
