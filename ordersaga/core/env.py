"""
Environment access for ``OrderSagaConfig.from_env``.

Values come from the process environment. A ``.env`` file in the project root
(or an explicit path) is loaded first with python-dotenv; variables already
set in the environment win unless ``override=True``.

Typed getters never raise on malformed input: a value that does not parse is
logged and replaced by the default.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import TypeVar

from dotenv import load_dotenv

from ordersaga.core.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_TRUE = frozenset({"true", "1", "yes", "on"})
_FALSE = frozenset({"false", "0", "no", "off"})


class EnvManager:
    """
    Typed reads of ``ORDERSAGA_*`` settings.

    Example:
        >>> env = EnvManager()
        >>> env.get("ORDERSAGA_CURRENCY", "usd")
        'usd'
        >>> env.get_decimal("ORDERSAGA_DEFAULT_TAX_RATE", Decimal("0.10"))
        Decimal('0.10')
    """

    def __init__(self, project_root: Path | str | None = None, auto_load: bool = True):
        self.project_root = Path(project_root) if project_root else Path.cwd()
        self._loaded = False
        if auto_load:
            self.load()

    @property
    def loaded(self) -> bool:
        """Whether a ``.env`` file has been read."""
        return self._loaded

    def load(self, env_file: str | Path | None = None, override: bool = False) -> bool:
        """Read ``env_file`` (default ``<project_root>/.env``); False if it is absent."""
        path = Path(env_file) if env_file is not None else self.project_root / ".env"
        if not path.is_file():
            return False

        load_dotenv(path, override=override)
        logger.debug(f"Loaded environment from {path}")
        self._loaded = True
        return True

    def get(self, key: str, default: str | None = None, required: bool = False) -> str | None:
        value = os.environ.get(key)
        if value is not None:
            return value
        if required:
            msg = f"Required environment variable not set: {key}"
            raise ValueError(msg)
        return default

    def _parse(self, key: str, default: T, convert: Callable[[str], T]) -> T:
        raw = os.environ.get(key)
        if raw is None or raw.strip() == "":
            return default
        try:
            return convert(raw.strip())
        except (ValueError, InvalidOperation):
            logger.warning(f"Ignoring malformed {key}={raw!r}, using {default!r}")
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        def convert(raw: str) -> bool:
            lowered = raw.lower()
            if lowered in _TRUE:
                return True
            if lowered in _FALSE:
                return False
            raise ValueError(raw)

        return self._parse(key, default, convert)

    def get_int(self, key: str, default: int = 0) -> int:
        return self._parse(key, default, int)

    def get_float(self, key: str, default: float = 0.0) -> float:
        return self._parse(key, default, float)

    def get_decimal(self, key: str, default: Decimal) -> Decimal:
        """Money and rates stay exact: parsed straight from the string."""
        return self._parse(key, default, Decimal)
