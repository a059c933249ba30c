"""
System Constants and Enumerations

This module defines system-wide constants and enumerations used across
the question-answering bot.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for magic numbers and key names
- Type-safe enums for state management

Author: System Architect
Date: 2026-02-10
"""

from enum import Enum, IntEnum

# ============================================================================
# Stage Identifiers (for structured logging)
# ============================================================================


class Stage(str, Enum):
    """
    Workflow stages used as the ``stage`` field of log events.

    Format: {SEQUENCE}_{DESCRIPTIVE_NAME}
    """

    ADMISSION = "0.0_ADMISSION"
    REFERENCE_DATA = "1.0_REFERENCE_DATA"
    HISTORY_LOAD = "2.0_HISTORY_LOAD"
    STREAM_AND_DELIVER = "3.0_STREAM_AND_DELIVER"
    HISTORY_SAVE = "4.0_HISTORY_SAVE"
    FAILURE = "5.0_FAILURE"

    RETRY = "R_RETRY_LOGIC"
    THROTTLE = "T_STREAM_THROTTLE"
    REPORTING = "E_ERROR_REPORTING"
    HEALTH = "H_HEALTH_CHECK"


class StepName(str, Enum):
    """Checkpointed workflow step names (stable: used in checkpoint keys)."""

    GET_REFERENCE_DATA = "getReferenceData"
    GET_HISTORY = "getHistory"
    STREAM_AND_DELIVER = "streamAndDeliver"
    SAVE_HISTORY = "saveHistory"


class Phase(str, Enum):
    """Classification of a generated text chunk."""

    THINKING = "thinking"
    RESPONSE = "response"


class ThrottleState(str, Enum):
    """Streaming throttle states."""

    AWAITING_THINKING = "awaiting_thinking"
    AWAITING_RESPONSE = "awaiting_response"
    DONE = "done"


class ErrorKind(str, Enum):
    """
    Failure classes attached to upstream errors at the adapter boundary.

    Retry predicates switch on this tag instead of matching message text.
    """

    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    NETWORK = "network"
    SERVER = "server"
    CLIENT = "client"
    AUTH = "auth"
    INVALID_RESPONSE = "invalid_response"
    UNKNOWN = "unknown"


TRANSIENT_ERROR_KINDS = frozenset(
    {ErrorKind.RATE_LIMITED, ErrorKind.TIMEOUT, ErrorKind.NETWORK, ErrorKind.SERVER}
)


# ============================================================================
# Discord Interaction Protocol
# ============================================================================


class InteractionType(IntEnum):
    PING = 1
    APPLICATION_COMMAND = 2


class InteractionResponseType(IntEnum):
    PONG = 1
    CHANNEL_MESSAGE_WITH_SOURCE = 4
    DEFERRED_CHANNEL_MESSAGE_WITH_SOURCE = 5


EPHEMERAL_MESSAGE_FLAG = 1 << 6
DISCORD_MESSAGE_LIMIT = 2000

HEADER_SIGNATURE = "X-Signature-Ed25519"
HEADER_SIGNATURE_TIMESTAMP = "X-Signature-Timestamp"
HEADER_REQUEST_ID = "X-Request-ID"

# Slash command registered for the bot ("/ask question:<text>")
ASK_COMMAND = {
    "name": "ask",
    "description": "Ask 433 a question",
    "options": [
        {
            "type": 3,
            "name": "question",
            "description": "The question you want to ask",
            "required": True,
        },
    ],
}


# ============================================================================
# Key-Value Store Keys
# ============================================================================

KV_KEY_REFERENCE_CACHE = "sheet_info"
KV_KEY_HISTORY = "chat_history"
KV_KEY_ERROR_REPORTED = "error_reported:{fingerprint}"
KV_KEY_STEP_CHECKPOINT = "workflow:{instance_id}:step:{step}"
KV_KEY_HEALTH_PROBE = "__health_check__"


# ============================================================================
# Presentation
# ============================================================================

USER_HISTORY_PREFIX = "質問: "
THINKING_MARKER = ":thought_balloon:"
ISSUE_LABEL_AUTO = "auto-reported"
ISSUE_TITLE_MAX = 80


# ============================================================================
# Retry Defaults
# ============================================================================

RETRY_MAX_ATTEMPTS = 3
RETRY_INITIAL_DELAY_MS = 1000
RETRY_MAX_DELAY_MS = 10000
RETRY_BACKOFF_MULTIPLIER = 2
