from sheetqa.reporting.error_reporter import (
    ErrorReporter,
    create_error_reporter,
    generate_fingerprint,
    health_check_fingerprint,
)

__all__ = ["ErrorReporter", "create_error_reporter", "generate_fingerprint", "health_check_fingerprint"]
