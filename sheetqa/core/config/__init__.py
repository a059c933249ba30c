"""
Configuration Module

Components:
-----------
- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: System-wide constants, enums, and key names

Usage:
------
```python
from sheetqa.core.config import get_settings
from sheetqa.core.config.constants import Stage, Phase

settings = get_settings()
ttl = settings.cache.CACHE_HISTORY_TTL
```

Testing:
-------
```python
from sheetqa.core.config import reload_settings

settings = reload_settings(GITHUB_TOKEN=None)
```
"""

from sheetqa.core.config.constants import ErrorKind, Phase, Stage, StepName, ThrottleState
from sheetqa.core.config.settings import Settings, get_settings, reload_settings

__all__ = [
    "ErrorKind",
    "Phase",
    "Settings",
    "Stage",
    "StepName",
    "ThrottleState",
    "get_settings",
    "reload_settings",
]
