"""
Configuration Management for DockPilot
Centralizes all environment-based configuration and settings
"""

import os
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional


def setup_logging(level: Optional[str] = None):
    """Configure application logging with rotation"""
    from .paths import DATA_DIR

    # Create logs directory with secure permissions
    log_dir = os.path.join(DATA_DIR, 'logs')
    os.makedirs(log_dir, mode=0o700, exist_ok=True)

    root_logger = logging.getLogger()

    # Close and clear any existing handlers to prevent file descriptor leaks
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    log_level = getattr(logging, (level or AppConfig.LOG_LEVEL).upper(), logging.INFO)
    root_logger.setLevel(log_level)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    console_handler.setFormatter(console_formatter)

    # Max 10MB per file, keep 14 backups
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, 'dockpilot.log'),
        maxBytes=10*1024*1024,
        backupCount=14,
        encoding='utf-8'
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(console_formatter)

    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    # aiohttp access/client chatter is noise at INFO
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


class AppConfig:
    """Main application configuration"""

    from .paths import DATABASE_PATH as DEFAULT_DATABASE_PATH, DOCKER_CONFIG_PATH as DEFAULT_DOCKER_CONFIG_PATH

    # Logging
    LOG_LEVEL = os.getenv('DOCKPILOT_LOG_LEVEL', 'INFO')

    # Persistence
    DATABASE_PATH = os.getenv('DOCKPILOT_DATABASE_PATH', DEFAULT_DATABASE_PATH)

    # Docker
    DOCKER_HOST = os.getenv('DOCKER_HOST', 'unix:///var/run/docker.sock')
    DOCKER_CONFIG_PATH = os.getenv('DOCKPILOT_DOCKER_CONFIG', DEFAULT_DOCKER_CONFIG_PATH)
    COMPOSE_SOCKET_PATH = os.getenv('DOCKPILOT_COMPOSE_SOCKET', '/tmp/compose.sock')

    # Update scanning
    SCAN_CONCURRENCY = int(os.getenv('DOCKPILOT_SCAN_CONCURRENCY', 10))
    TOKEN_TIMEOUT = float(os.getenv('DOCKPILOT_TOKEN_TIMEOUT', 10))
    MANIFEST_TIMEOUT = float(os.getenv('DOCKPILOT_MANIFEST_TIMEOUT', 15))
    BLOB_TIMEOUT = float(os.getenv('DOCKPILOT_BLOB_TIMEOUT', 10))
    RELEASE_LOOKUP_TIMEOUT = float(os.getenv('DOCKPILOT_RELEASE_LOOKUP_TIMEOUT', 5))

    # Platform selection for multi-arch manifests (empty = detect from host)
    PLATFORM_OS = os.getenv('DOCKPILOT_PLATFORM_OS', 'linux')
    PLATFORM_ARCH = os.getenv('DOCKPILOT_PLATFORM_ARCH', '')
    PLATFORM_VARIANT = os.getenv('DOCKPILOT_PLATFORM_VARIANT', '')

    # Update execution
    PULL_TIMEOUT = int(os.getenv('DOCKPILOT_PULL_TIMEOUT', 1800))
    HISTORY_LIMIT = int(os.getenv('DOCKPILOT_HISTORY_LIMIT', 100))

    # Our own image - never auto-applied by scheduled updates
    SELF_IMAGE = os.getenv('DOCKPILOT_SELF_IMAGE', 'ghcr.io/serversathome-personal/dockpilot')

    @classmethod
    def validate(cls):
        """Validate configuration"""
        if cls.SCAN_CONCURRENCY < 1:
            raise ValueError(f"Scan concurrency must be at least 1: {cls.SCAN_CONCURRENCY}")

        for name in ('TOKEN_TIMEOUT', 'MANIFEST_TIMEOUT', 'BLOB_TIMEOUT', 'RELEASE_LOOKUP_TIMEOUT', 'PULL_TIMEOUT'):
            if getattr(cls, name) <= 0:
                raise ValueError(f"{name} must be positive: {getattr(cls, name)}")

        if cls.HISTORY_LIMIT < 1:
            raise ValueError(f"History limit must be at least 1: {cls.HISTORY_LIMIT}")

        return True
