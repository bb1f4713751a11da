"""Configuration module for the ridgeline terrain engine.

Centralizes data paths and configuration settings.
"""
import os
from pathlib import Path

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Data directories
DATA_DIR = PROJECT_ROOT / "data"
MOUNTAINS_DIR = Path(os.environ.get("RIDGELINE_DATA_DIR", DATA_DIR / "mountains"))

# Per-mountain layout
DEFAULT_MANIFEST_NAME = "manifest.json"
CHUNKS_SUBDIR = "chunks"
DEFAULT_CHUNK_PATTERN = "chunk_{x}_{z}.raw"

# Default settings
DEFAULT_CHUNK_SIZE = 64.0
DEFAULT_CHUNK_RESOLUTION = 32
DEFAULT_LOG_LEVEL = "INFO"
