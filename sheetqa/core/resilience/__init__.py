from sheetqa.core.resilience.retry import RetryConfig, is_transient, retry_all, with_retry
from sheetqa.core.resilience.timeout import with_timeout

__all__ = ["RetryConfig", "is_transient", "retry_all", "with_retry", "with_timeout"]
