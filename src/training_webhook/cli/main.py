#!/usr/bin/env python3
"""
CLI for the training results webhook.
Serve the webhook, sign and replay payloads, and manage the database.
"""

import asyncio
import json
from pathlib import Path

import click
import httpx
import uvicorn
from loguru import logger
from rich.console import Console
from rich.table import Table

from training_webhook import __version__
from training_webhook.config.settings import get_config
from training_webhook.utils.logging import setup_logging
from training_webhook.webhooks.signature import compute_signature

console = Console()


@click.group()
@click.version_option(version=__version__)
def app():
    """Training Results Webhook CLI."""
    config = get_config()
    setup_logging(log_level=config.log_level, enable_json=config.log_json)


@app.group()
def server():
    """Server management commands."""
    pass


@server.command()
@click.option("--host", default=None, help="Host to bind to")
@click.option("--port", default=None, type=int, help="Port to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
def start(host: str | None, port: int | None, reload: bool):
    """Start the webhook server."""
    config = get_config()
    result = config.validate_configuration()
    for warning in result["warnings"]:
        logger.warning(warning)
    if not result["valid"]:
        raise click.ClickException("; ".join(result["errors"]))

    logger.info("Starting training results webhook server")
    uvicorn.run(
        "training_webhook.webhooks.api:create_standalone_app",
        factory=True,
        host=host or config.host,
        port=port or config.port,
        reload=reload,
        log_level=config.log_level.lower(),
    )


@app.group()
def webhook():
    """Sign and replay Typeform payloads."""
    pass


def _resolve_secret(secret: str | None) -> str:
    secret = secret or get_config().get_webhook_secret()
    if not secret:
        raise click.ClickException("No webhook secret given or configured")
    return secret


@webhook.command()
@click.argument("payload_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--secret", default=None, help="Webhook secret (defaults to configuration)")
def sign(payload_file: Path, secret: str | None):
    """Print the Typeform-Signature header value for a payload file."""
    body = payload_file.read_bytes()
    click.echo(compute_signature(body, _resolve_secret(secret)))


@webhook.command()
@click.argument("payload_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--url", default="http://localhost:8000/webhooks/typeform", help="Webhook URL")
@click.option("--secret", default=None, help="Webhook secret (defaults to configuration)")
def send(payload_file: Path, url: str, secret: str | None):
    """Sign a payload file and deliver it to a running webhook."""
    body = payload_file.read_bytes()
    config = get_config()
    headers = {
        "Content-Type": "application/json",
        config.signature_header: compute_signature(body, _resolve_secret(secret)),
    }

    try:
        response = httpx.post(url, content=body, headers=headers, timeout=30)
    except httpx.HTTPError as e:
        raise click.ClickException(f"Delivery failed: {e}")

    icon = "✅" if response.is_success else "❌"
    console.print(f"{icon} {response.status_code} {response.text}")
    if not response.is_success:
        raise SystemExit(1)


@app.group()
def config():
    """Configuration commands."""
    pass


@config.command(name="validate")
def validate_config():
    """Validate configuration from the environment."""
    result = get_config().validate_configuration()

    table = Table(title="Configuration")
    table.add_column("Level")
    table.add_column("Message")
    for error in result["errors"]:
        table.add_row("[red]error[/red]", error)
    for warning in result["warnings"]:
        table.add_row("[yellow]warning[/yellow]", warning)

    if result["errors"] or result["warnings"]:
        console.print(table)

    if not result["valid"]:
        raise SystemExit(1)
    console.print("✅ Configuration is valid")


@app.group()
def db():
    """Database management commands."""
    pass


@db.command()
@click.option("--drop", is_flag=True, help="Drop existing tables first")
def init(drop: bool):
    """Create the user and webhook log tables."""
    from training_webhook.infrastructure.database import get_database_manager

    async def run():
        database = get_database_manager(get_config().database_url)
        try:
            if drop:
                await database.drop_tables()
            await database.create_tables()
        finally:
            await database.dispose()

    asyncio.run(run())
    console.print("✅ Database initialized")


@db.command(name="seed-users")
@click.argument("users_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def seed_users(users_file: Path):
    """Insert user documents from a JSON list."""
    from training_webhook.infrastructure.database import get_database_manager
    from training_webhook.infrastructure.stores import SQLAlchemyUserStore
    from training_webhook.webhooks.models import UserRecord

    documents = json.loads(users_file.read_text())
    if not isinstance(documents, list):
        raise click.ClickException("Users file must contain a JSON list")

    async def run():
        database = get_database_manager(get_config().database_url)
        store = SQLAlchemyUserStore(database.session_factory)
        try:
            for document in documents:
                await store.insert(UserRecord.model_validate(document))
        finally:
            await database.dispose()

    asyncio.run(run())
    console.print(f"✅ Seeded {len(documents)} users")


if __name__ == "__main__":
    app()
