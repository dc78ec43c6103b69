"""Leo command line entry point.

Subcommands:
  onboard   Create ~/.leo, the workspace and bootstrap files
  agent     Chat from the terminal (one message with -m, else interactive)
  login     Authenticate with a Google account (OAuth2 + PKCE)
  logout    Delete stored credentials
  gateway   Serve the REST API (and the Telegram bot when enabled)
  status    Show configuration and authentication state
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from starlette.applications import Starlette

from leo import __version__
from leo.agent.context import Context
from leo.agent.loop import AgentLoop
from leo.config import Settings, config_path, load_settings, onboard
from leo.errors import LeoError
from leo.llm import create_client

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="leo", description="Leo 🦁 personal AI assistant")
    parser.add_argument("--version", action="version", version=f"leo {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("onboard", help="Initialize configuration and workspace")

    agent = sub.add_parser("agent", help="Chat with the agent")
    agent.add_argument("-m", "--message", help="Send one message and exit")
    agent.add_argument("-s", "--session", default="cli:default", help="Session id")

    login = sub.add_parser("login", help="Authenticate with Google")
    login.add_argument("--dry-run", action="store_true", help="Print the authorization URL only")

    sub.add_parser("logout", help="Delete stored credentials")

    gateway = sub.add_parser("gateway", help="Run the REST gateway")
    gateway.add_argument("-p", "--port", type=int, help="Port (default from settings)")
    gateway.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub.add_parser("status", help="Show status")
    return parser


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_onboard(settings: Settings) -> None:
    onboard(settings)
    print(f"✓ Config: {config_path()}")
    print(f"✓ Workspace: {settings.workspace}")
    print("\nNext steps:")
    print("  1. Set GEMINI_API_KEY, or set provider to 'google-cli' and run `leo login`")
    print('  2. Chat: leo agent -m "Hello!"')


async def cmd_agent(settings: Settings, message: str | None, session: str) -> None:
    from leo.adapters.cli import CliChannel

    ctx = Context.create(settings)
    client = create_client(settings, notify=print)
    try:
        channel = CliChannel(AgentLoop(client, settings.max_iterations), ctx, session_id=session)
        if message:
            print(await channel.run_once(message))
        else:
            await channel.run_interactive()
    finally:
        await client.close()


async def cmd_login(settings: Settings, dry_run: bool) -> None:
    from leo.auth.credentials import credentials_path
    from leo.auth.pkce import PkcePair
    from leo.auth.provider import GeminiAuthProvider, generate_state

    provider = GeminiAuthProvider.from_settings(settings, notify=print)
    try:
        if dry_run:
            pkce = PkcePair()
            print(provider.build_auth_url(pkce.challenge, generate_state()))
            return
        await provider.get_valid_token()
        print(f"✓ Logged in. Credentials saved to {credentials_path()}")
    finally:
        await provider.close()


def cmd_logout() -> None:
    from leo.auth.credentials import credentials_path, delete_credentials

    if delete_credentials():
        print(f"✓ Removed {credentials_path()}")
    else:
        print("Not logged in.")


def cmd_status(settings: Settings) -> None:
    from leo.auth.credentials import credentials_path
    from leo.auth.provider import has_valid_credentials

    print(f"🦁 Leo {__version__}\n")
    print(f"Config:    {config_path()} {'✓' if config_path().exists() else '(missing)'}")
    print(f"Workspace: {settings.workspace} {'✓' if settings.workspace.exists() else '(missing)'}")
    print(f"Provider:  {settings.provider}")
    print(f"Model:     {settings.model}")
    if settings.provider == "gemini":
        print(f"API key:   {'set' if settings.gemini_api_key else 'not set'}")
    else:
        logged_in = has_valid_credentials()
        print(f"OAuth:     {'logged in' if logged_in else 'not logged in'} ({credentials_path()})")
    print(f"Telegram:  {'enabled' if settings.telegram_enabled else 'disabled'}")


def build_gateway_app(settings: Settings) -> Starlette:
    """REST app whose lifespan owns the backend client and the Telegram poller."""
    from leo.adapters.telegram import TelegramChannel
    from leo.api.rest import create_app

    ctx = Context.create(settings)
    client = create_client(settings)
    loop = AgentLoop(client, settings.max_iterations)

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        telegram: TelegramChannel | None = None
        poller: asyncio.Task[None] | None = None
        if settings.telegram_enabled:
            if not settings.telegram_token:
                logger.warning("telegram_enabled is set but telegram_token is empty; skipping bot")
            else:
                telegram = TelegramChannel(
                    settings.telegram_token, loop, ctx, allow_from=settings.telegram_allow_from
                )
                poller = asyncio.create_task(telegram.start())

        logger.info("Leo gateway started: provider=%s model=%s", settings.provider, client.default_model())
        logger.info("Tools: %s", ", ".join(ctx.registry.names()))
        yield

        if poller is not None:
            poller.cancel()
        if telegram is not None:
            await telegram.close()
        await client.close()
        logger.info("Leo gateway stopped.")

    return create_app(loop, ctx, lifespan=lifespan)


def cmd_gateway(settings: Settings, port: int | None) -> None:
    app = build_gateway_app(settings)
    uvicorn.run(
        app,
        host=settings.host,
        port=port or settings.port,
        log_level=settings.log_level,
    )


def main(argv: list[str] | None = None) -> None:
    """Parse arguments, load settings and dispatch to a command."""
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings()
        level = "debug" if getattr(args, "verbose", False) else settings.log_level
        if args.command == "gateway" and args.verbose:
            settings = settings.model_copy(update={"log_level": "debug"})
        configure_logging(level)

        if args.command == "onboard":
            cmd_onboard(settings)
        elif args.command == "agent":
            asyncio.run(cmd_agent(settings, args.message, args.session))
        elif args.command == "login":
            asyncio.run(cmd_login(settings, args.dry_run))
        elif args.command == "logout":
            cmd_logout()
        elif args.command == "gateway":
            cmd_gateway(settings, args.port)
        elif args.command == "status":
            cmd_status(settings)
    except LeoError as e:
        print(f"❌ {e}", file=sys.stderr)
        if e.hint:
            print(f"   {e.hint}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
