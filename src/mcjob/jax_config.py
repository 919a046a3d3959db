"""
JAX Configuration - MUST be imported before any JAX imports.

This module sets environment variables for JAX configuration including:
- Double precision (chains accumulate many small log-density differences)
- Persistent compilation cache directory
- Minimum compile time threshold for caching
"""
import logging
import os
from pathlib import Path

logger = logging.getLogger('mcjob')

# --- PRECISION ---
# Acceptance tests compare log-densities that can differ by ~1e-8 near the mode
os.environ.setdefault("JAX_ENABLE_X64", "true")

# --- PERSISTENT COMPILATION CACHE ---
# Enables cross-session caching of compiled log-target kernels
_JAX_CACHE_DIR = Path.home() / ".cache" / "jax" / "mcjob_cache"
try:
    _JAX_CACHE_DIR.mkdir(parents=True, exist_ok=True)
    os.environ.setdefault("JAX_COMPILATION_CACHE_DIR", str(_JAX_CACHE_DIR))
except OSError as e:
    # Read-only home: run without the persistent cache
    logger.debug(f"Persistent compilation cache disabled, cannot create {_JAX_CACHE_DIR}: {e}")
os.environ.setdefault("JAX_PERSISTENT_CACHE_MIN_COMPILE_TIME_SECS", "1.0")
