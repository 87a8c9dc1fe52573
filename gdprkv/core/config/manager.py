from __future__ import annotations

import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from gdprkv.core.config.io import ConfigFsPaths, atomic_write_json, read_json_file
from gdprkv.core.config.models import GdprKvConfig
from gdprkv.core.errors import ConfigError


class ConfigManager:
    """
    Loads `config/gdprkv.json` under `root`.

    A missing file is created with defaults; unreadable or invalid content
    raises ConfigError and is never overwritten.
    """

    def __init__(self, *, fs: Optional[ConfigFsPaths] = None, logger: Optional[logging.Logger] = None, read_only: bool = False):
        self.fs = fs or ConfigFsPaths(".")
        self.logger = logger or logging.getLogger("gdprkv.config")
        self.read_only = read_only
        self._cfg: Optional[GdprKvConfig] = None

    def load(self) -> GdprKvConfig:
        res = read_json_file(self.fs.main)
        if not res.ok and res.error == "missing":
            cfg = GdprKvConfig()
            if not self.read_only:
                atomic_write_json(self.fs.main, cfg.model_dump(mode="json"))
                self.logger.info(f"wrote default config to {self.fs.main}")
            self._cfg = cfg
            return cfg
        if not res.ok:
            raise ConfigError(f"Config file {self.fs.main} unreadable: {res.error}", path=self.fs.main)
        try:
            cfg = GdprKvConfig.model_validate(res.data)
        except PydanticValidationError as e:
            raise ConfigError(
                f"Config file {self.fs.main} invalid: {e.error_count()} error(s)",
                path=self.fs.main,
                errors=[f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()],
            ) from e
        self._cfg = cfg
        return cfg

    def get(self) -> GdprKvConfig:
        if self._cfg is None:
            return self.load()
        return self._cfg

    def save(self, cfg: GdprKvConfig) -> None:
        if self.read_only:
            raise ConfigError("Config manager is read-only.", path=self.fs.main)
        atomic_write_json(self.fs.main, cfg.model_dump(mode="json"))
        self._cfg = cfg
