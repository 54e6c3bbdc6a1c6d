from __future__ import annotations
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from polarionnode.credentials.models import (
    CREDENTIAL_TYPE,
    PolarionCredential,
    StoredCredential,
)

logger = logging.getLogger(__name__)

ENV_REF_PREFIX = "env://"


def resolve_env_refs(value: Any) -> Any:
    """
    Replace 'env://VAR_NAME' strings (at any nesting depth) with the value
    of the environment variable. Unset variables resolve to "".
    """
    if isinstance(value, str) and value.startswith(ENV_REF_PREFIX):
        var = value[len(ENV_REF_PREFIX):]
        resolved = os.environ.get(var)
        if resolved is None:
            logger.warning("Credential references unset environment variable %s", var)
            return ""
        return resolved
    if isinstance(value, dict):
        return {k: resolve_env_refs(v) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_env_refs(v) for v in value]
    return value


class CredentialRegistry:
    """
    Loads, validates, and serves stored credentials.

    Backend: directory of YAML files, one credential per file:

        name: polarion-prod
        type: polarionApi
        data:
          baseUrl: https://alm.example.com/polarion/api/rest/v1
          authentication: token
          token: env://POLARION_TOKEN

    Secrets are kept out of the files by pointing at environment variables
    with env:// references; they are resolved once at load time. The file
    stem is used as the name when `name` is omitted.

    The registry is process-wide, initialized once via load_all() and
    hot-reloadable via reload() (lock + atomic dict swap).
    """

    def __init__(self, config_dir: str = "configs/credentials") -> None:
        self._config_dir = Path(config_dir)
        self._credentials: Dict[str, StoredCredential] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def load_all(self) -> None:
        """
        Scan config_dir for *.yaml / *.yml files and parse each into a
        StoredCredential. Replaces the in-memory store atomically on success.

        Raises:
            FileNotFoundError: if config_dir does not exist.
        """
        if not self._config_dir.exists():
            raise FileNotFoundError(
                f"Credential directory not found: {self._config_dir}"
            )

        paths = sorted(
            list(self._config_dir.glob("*.yaml")) + list(self._config_dir.glob("*.yml"))
        )
        loaded: Dict[str, StoredCredential] = {}
        for path in paths:
            try:
                raw = yaml.safe_load(path.read_text()) or {}
                raw.setdefault("name", path.stem)
                raw["data"] = resolve_env_refs(raw.get("data") or {})
                stored = StoredCredential.model_validate(raw)
                if stored.type == CREDENTIAL_TYPE:
                    # Fail fast on a structurally broken Polarion secret.
                    stored.as_polarion()
                loaded[stored.name] = stored
                logger.info("Loaded credential: %s (%s, %s)", stored.name, stored.type, path.name)
            except (ValidationError, yaml.YAMLError) as exc:
                logger.error("Failed to load credential %s: %s", path, exc)
                raise

        with self._lock:
            self._credentials = loaded

        logger.info("CredentialRegistry loaded %d credential(s).", len(loaded))

    def reload(self) -> None:
        logger.info("Hot-reloading credentials from %s", self._config_dir)
        self.load_all()

    def get(self, name: str) -> Optional[StoredCredential]:
        """Return the stored credential called `name`, or None if unknown."""
        with self._lock:
            return self._credentials.get(name)

    def get_polarion(self, name: str) -> Optional[PolarionCredential]:
        stored = self.get(name)
        if stored is None or stored.type != CREDENTIAL_TYPE:
            return None
        return stored.as_polarion()

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._credentials.keys())

    def count(self) -> int:
        with self._lock:
            return len(self._credentials)
