"""
Utils package initialization.
Import semua utilities di sini agar mudah diakses.
"""

from .config import Config
from .identity import get_hostname
from .metrics import metrics, measure_time

__all__ = ['Config', 'get_hostname', 'metrics', 'measure_time']
