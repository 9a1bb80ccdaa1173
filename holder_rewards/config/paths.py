"""
Configuration file for project paths and directories
"""

import os
from pathlib import Path

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Log directory
LOGS_DIR = Path(os.getenv("LOGS_DIR", PROJECT_ROOT / "logs"))

# File paths
WORKER_LOG = LOGS_DIR / "holder_rewards.log"
