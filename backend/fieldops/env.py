"""Environment loading helpers.

Nothing here runs at import time; entrypoints (the ASGI app, the stdio
endpoint process, startup checks) call it explicitly.
"""

from __future__ import annotations

from dotenv import find_dotenv, load_dotenv


def load_dotenv_if_present(filename: str = ".env") -> bool:
    """Load variables from the nearest .env file without overriding the process env."""

    dotenv_path = find_dotenv(filename=filename, usecwd=True)
    if not dotenv_path:
        return False
    return load_dotenv(dotenv_path=dotenv_path, override=False)
