from __future__ import annotations

from .admission import AdmissionResult, admit_post
from .config import config_sha256, load_config
from .config_schema import AppConfig
from .errors import ConfigError, FetchError, StorageError
from .post import NormalizedPost
from .rate_policy import RateDecision, RatePolicy

__all__ = [
    "AdmissionResult",
    "AppConfig",
    "ConfigError",
    "FetchError",
    "NormalizedPost",
    "RateDecision",
    "RatePolicy",
    "StorageError",
    "admit_post",
    "config_sha256",
    "load_config",
]
