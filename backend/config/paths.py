"""
Centralized path configuration for DockPilot
Ensures all modules use consistent, volume-mounted paths
"""

import os

# The /app/data directory is mounted as a volume in Docker
DATA_DIR = os.getenv('DOCKPILOT_DATA_DIR', '/app/data')

# Database path - MUST be in the volume mount for persistence
DATABASE_PATH = os.path.join(DATA_DIR, 'dockpilot.db')

# Docker CLI config (registry credentials written by `docker login`)
DOCKER_CONFIG_PATH = os.path.join(os.path.expanduser('~'), '.docker', 'config.json')

# For development/testing outside Docker
if not os.path.exists('/app') and 'DOCKPILOT_DATA_DIR' not in os.environ:
    DATA_DIR = './data'
    DATABASE_PATH = os.path.join(DATA_DIR, 'dockpilot.db')
