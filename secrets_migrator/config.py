import logging
import os
import re
import subprocess
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from .client import DEFAULT_API_URL
from .crypto import DEFAULT_KEY_MAX_AGE
from .errors import ConfigurationError
from .orchestrator import DEFAULT_WORKERS

logger = logging.getLogger(__name__)

# git@github.com:owner/repo.git, https://github.com/owner/repo(.git), ssh://git@host/owner/repo
REMOTE_OWNER_PATTERN = re.compile(r'(?:[:/])([^/:]+)/[^/]+?(?:\.git)?/?$')


@dataclass
class MigrationConfig:
    """Settings for one run, built once at startup and passed down explicitly"""
    source_org: str
    source_token: str
    destination_org: Optional[str] = None
    target_token: Optional[str] = None
    source_api_url: str = DEFAULT_API_URL
    target_api_url: str = DEFAULT_API_URL
    workers: int = DEFAULT_WORKERS
    max_retries: int = 3
    key_max_age: float = DEFAULT_KEY_MAX_AGE
    output_file: str = 'secrets.csv'
    values_file: Optional[str] = None
    values_env_prefix: Optional[str] = None
    report_file: Optional[str] = None


def owner_from_remote_url(url: str) -> Optional[str]:
    match = REMOTE_OWNER_PATTERN.search(url.strip())
    return match.group(1) if match else None


def current_repository_owner(environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Owner of the repository the tool runs in (GITHUB_REPOSITORY, then the origin remote)"""
    environ = environ if environ is not None else os.environ
    repository = environ.get('GITHUB_REPOSITORY')
    if repository and '/' in repository:
        return repository.split('/', 1)[0]

    try:
        result = subprocess.run(['git', 'remote', 'get-url', 'origin'],
                                capture_output=True, text=True, check=True)
    except (OSError, subprocess.CalledProcessError) as e:
        logger.debug(f"Could not read the origin remote: {e}")
        return None
    return owner_from_remote_url(result.stdout)


def _int_setting(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def load_config(command: str, source_org: Optional[str] = None, destination_org: Optional[str] = None,
                output_file: Optional[str] = None, values_file: Optional[str] = None,
                values_env_prefix: Optional[str] = None, workers: Optional[int] = None,
                report_file: Optional[str] = None, environ: Optional[Mapping[str, str]] = None,
                dotenv: bool = True) -> MigrationConfig:
    """Build the run configuration from command line values, the environment and a .env file.

    Command line values win over environment variables. ``command`` is
    ``export`` or ``migrate``; only ``migrate`` needs a destination.
    """
    if dotenv:
        load_dotenv()
    environ = environ if environ is not None else os.environ

    source_token = environ.get('SOURCE_GITHUB_TOKEN') or environ.get('GH_TOKEN') or environ.get('GITHUB_TOKEN')
    target_token = environ.get('TARGET_GITHUB_TOKEN') or source_token
    source_org = source_org or environ.get('SOURCE_ORGANIZATION') or current_repository_owner(environ)
    destination_org = destination_org or environ.get('TARGET_ORGANIZATION')

    # Validate required settings
    required = {
        'SOURCE_GITHUB_TOKEN': source_token,
        'SOURCE_ORGANIZATION': source_org,
    }
    if command == 'migrate':
        required['TARGET_ORGANIZATION'] = destination_org
    missing = [name for name, value in required.items() if not value]
    if missing:
        raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")

    config = MigrationConfig(
        source_org=source_org,
        source_token=source_token,
        destination_org=destination_org,
        target_token=target_token,
        source_api_url=environ.get('SOURCE_GITHUB_API_URL') or DEFAULT_API_URL,
        target_api_url=environ.get('TARGET_GITHUB_API_URL') or DEFAULT_API_URL,
        workers=workers if workers is not None else _int_setting(environ, 'MIGRATION_WORKERS', DEFAULT_WORKERS),
        max_retries=_int_setting(environ, 'MAX_RETRIES', 3),
        key_max_age=float(_int_setting(environ, 'KEY_MAX_AGE', int(DEFAULT_KEY_MAX_AGE))),
        values_file=values_file,
        values_env_prefix=values_env_prefix,
        report_file=report_file,
    )
    if output_file:
        config.output_file = output_file
    if config.workers < 1:
        raise ConfigurationError(f"Worker count must be at least 1, got {config.workers}")
    return config
