# content_swap/db/__init__.py

__all__ = [
    "client",
    "lock",
    "validator_repo",
    "swapper",
    "recorder",
    "staging",
    "staging_loader",
]
