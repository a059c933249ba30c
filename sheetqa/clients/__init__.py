"""
External service adapters.

Each adapter classifies its failures with an ``ErrorKind`` at the boundary so
retry predicates never look at message text.
"""

from sheetqa.clients.discord_client import DiscordWebhookClient
from sheetqa.clients.gemini_client import GeminiClient
from sheetqa.clients.github_client import GitHubIssueClient
from sheetqa.clients.http import create_http_client
from sheetqa.clients.sheets_client import SheetsClient

__all__ = [
    "DiscordWebhookClient",
    "GeminiClient",
    "GitHubIssueClient",
    "SheetsClient",
    "create_http_client",
]
