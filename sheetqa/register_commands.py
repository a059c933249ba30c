#!/usr/bin/env python3
"""
Slash Command Registration Script

Registers the ``/ask`` command with the chat platform. The same metadata is
what the interaction route expects at runtime (first option = question).

Usage:
    python -m sheetqa.register_commands

Requires DISCORD_APPLICATION_ID and DISCORD_TOKEN.
"""

import asyncio
import sys

import httpx

from sheetqa.clients.http import create_http_client
from sheetqa.core.config.settings import get_settings
from sheetqa.core.exceptions import ConfigurationError, DeliveryError, kind_from_status
from sheetqa.core.logging import get_logger, setup_logging

logger = get_logger(__name__)

# Application command option type 3 = STRING
ASK_COMMAND = {
    "name": "ask",
    "description": "Ask a question about the spreadsheet",
    "options": [
        {
            "type": 3,
            "name": "question",
            "description": "The question you want to ask",
            "required": True,
        },
    ],
}

COMMANDS = [ASK_COMMAND]


async def register_commands(http: httpx.AsyncClient, settings=None, commands: list[dict] | None = None) -> list[dict]:
    """
    Overwrite the application's global commands.

    Returns:
        The command objects echoed back by the platform

    Raises:
        ConfigurationError: Application id or bot token missing
        DeliveryError: The platform rejected the registration
    """
    settings = settings or get_settings()
    discord = settings.discord
    if not discord.DISCORD_APPLICATION_ID or not discord.DISCORD_TOKEN:
        raise ConfigurationError("DISCORD_APPLICATION_ID and DISCORD_TOKEN are required to register commands")

    url = f"{discord.DISCORD_API_BASE}/applications/{discord.DISCORD_APPLICATION_ID}/commands"
    response = await http.put(
        url,
        json=commands if commands is not None else COMMANDS,
        headers={"Authorization": f"Bot {discord.DISCORD_TOKEN}"},
    )
    if not response.is_success:
        raise DeliveryError(
            f"Command registration failed with status {response.status_code}",
            kind=kind_from_status(response.status_code),
            details={"status_code": response.status_code, "body": response.text[:500]},
        )

    registered = response.json()
    logger.info("Commands registered", count=len(registered), names=[c.get("name") for c in registered])
    return registered


async def _main() -> int:
    settings = get_settings()
    async with create_http_client(settings.discord.DISCORD_TIMEOUT) as http:
        try:
            await register_commands(http, settings=settings)
        except (ConfigurationError, DeliveryError) as e:
            print(f"[X] {e.message}")
            return 1
    print("[OK] Registered commands:", ", ".join(command["name"] for command in COMMANDS))
    return 0


def main():
    setup_logging()
    sys.exit(asyncio.run(_main()))


if __name__ == "__main__":
    main()
