import csv
import logging
import os
from typing import Dict, Mapping, Optional

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class ValueSource:
    """Plaintext secret values supplied by the operator.

    GitHub never returns existing secret values, so they come from a CSV
    (typically the export file with the ``value`` column filled in) or from
    environment variables named ``<prefix><SECRET_NAME>``. Names are matched
    case-insensitively.
    """

    def __init__(self, values: Optional[Mapping[str, str]] = None, env_prefix: Optional[str] = None,
                 environ: Optional[Mapping[str, str]] = None):
        self._values: Dict[str, str] = {k.upper(): v for k, v in (values or {}).items() if v}
        self.env_prefix = env_prefix
        self._environ = environ if environ is not None else os.environ

    @classmethod
    def from_csv(cls, filename: str, env_prefix: Optional[str] = None) -> 'ValueSource':
        """Load values from a CSV file with ``name`` and ``value`` columns"""
        if not os.path.exists(filename):
            raise ConfigurationError(f"Values file not found: {filename}")

        values = {}
        with open(filename, 'r', newline='', encoding='utf-8') as csvfile:
            reader = csv.DictReader(csvfile)
            missing = {'name', 'value'} - set(reader.fieldnames or [])
            if missing:
                raise ConfigurationError(f"Values file {filename} is missing columns: {', '.join(sorted(missing))}")
            for row_num, row in enumerate(reader, start=2):
                name = (row.get('name') or '').strip()
                value = row.get('value') or ''
                if not name:
                    logger.warning(f"Row {row_num}: skipping row without a secret name")
                    continue
                if value:
                    values[name] = value

        logger.info(f"Loaded values for {len(values)} secrets from {filename}")
        return cls(values, env_prefix=env_prefix)

    def get(self, name: str) -> Optional[str]:
        value = self._values.get(name.upper())
        if value:
            return value
        if self.env_prefix:
            return self._environ.get(f"{self.env_prefix}{name.upper()}") or None
        return None

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ValueSource({len(self._values)} values, env_prefix={self.env_prefix!r})"
