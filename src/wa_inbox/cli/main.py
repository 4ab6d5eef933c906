"""
WhatsApp Inbox CLI

Command-line interface for WhatsApp inbox administration.

Commands:
- init-db: Create database tables
- set-config / show-config: Manage stored Cloud API credentials
- test-connection: Check the configured credentials against the Graph API
- stats: Message and media statistics
- send-test: Send a test message
- list-conversations: List recent conversations
- cleanup-media: Delete media older than N days
- verify-media: Mark media whose file is missing on disk as failed
"""

import asyncio
from typing import Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from wa_inbox.settings import get_settings

app = typer.Typer(
    name="wa-inbox",
    help="WhatsApp Inbox CLI",
)

console = Console()


def get_db():
    """Get database session."""
    from wa_inbox.db import get_db as _get_db
    return next(_get_db())


def get_config_provider():
    from wa_inbox.config.provider import ConfigProvider
    from wa_inbox.db import get_sessionmaker

    return ConfigProvider(get_sessionmaker(), get_settings())


def get_media_store():
    from wa_inbox.media.store import MediaStore

    return MediaStore(get_settings().MEDIA_ROOT)


@app.callback()
def main():
    """Configure logging before any command runs."""
    from wa_inbox.logging import setup_logging

    setup_logging(fmt="text")


@app.command()
def init_db():
    """
    Create all database tables.
    """
    from wa_inbox.db import init_db as _init_db

    _init_db()
    rprint("[green]Database initialized[/green]")


@app.command()
def set_config(
    access_token: str = typer.Option(..., prompt=True, hide_input=True, help="Cloud API access token (encrypted at rest)"),
    phone_number_id: str = typer.Option(..., help="WhatsApp phone number ID"),
    webhook_url: Optional[str] = typer.Option(None, help="Public webhook URL"),
    verify_token: Optional[str] = typer.Option(None, help="Webhook verify token"),
):
    """
    Store Cloud API credentials, replacing the active configuration.
    """
    if not get_settings().WHATSAPP_ENCRYPTION_KEY:
        rprint("[yellow]Warning: WHATSAPP_ENCRYPTION_KEY not set, storing token unencrypted[/yellow]")

    credentials = get_config_provider().save(
        access_token=access_token,
        phone_number_id=phone_number_id,
        webhook_url=webhook_url,
        verify_token=verify_token,
    )

    rprint("[green]Configuration saved:[/green]")
    rprint(f"  Phone Number ID: {credentials.phone_number_id}")
    rprint(f"  Webhook URL: {credentials.webhook_url or '-'}")


@app.command()
def show_config():
    """
    Show the credentials in effect (secrets masked).
    """
    credentials = get_config_provider().get()

    table = Table(title="WhatsApp Configuration")
    table.add_column("Setting", style="dim")
    table.add_column("Value")

    table.add_row("Source", credentials.source)
    table.add_row("Configured", "Yes" if credentials.is_configured else "No")
    table.add_row("Phone Number ID", credentials.phone_number_id or "-")
    table.add_row("Webhook URL", credentials.webhook_url or "-")
    table.add_row("Access Token", "set" if credentials.access_token else "-")
    table.add_row("Verify Token", "set" if credentials.verify_token else "-")
    table.add_row(
        "Last Configured",
        credentials.last_configured.strftime("%Y-%m-%d %H:%M") if credentials.last_configured else "-",
    )

    console.print(table)


@app.command()
def test_connection():
    """
    Check the configured credentials against the Graph API.
    """
    from wa_inbox.errors import ProviderError
    from wa_inbox.providers.meta_cloud.client import MetaCloudClient

    settings = get_settings()
    credentials = get_config_provider().get()
    if not credentials.is_configured:
        rprint("[red]WhatsApp not configured: run set-config first[/red]")
        raise typer.Exit(1)

    async def fetch():
        client = MetaCloudClient(
            base_url=settings.GRAPH_API_BASE_URL,
            timeout=settings.HTTP_TIMEOUT,
        )
        try:
            return await client.get_phone_number(
                credentials.phone_number_id, credentials.access_token
            )
        finally:
            await client.close()

    try:
        data = asyncio.run(fetch())
    except ProviderError as e:
        rprint("[red]Connection failed[/red]")
        rprint(f"  Error: {e}")
        rprint(f"  Code: {e.code}")
        raise typer.Exit(1)

    rprint("[green]Connected to WhatsApp Business API[/green]")
    rprint(f"  Phone: {data.get('display_phone_number', '-')}")
    rprint(f"  Name: {data.get('verified_name', '-')}")
    rprint(f"  Quality: {data.get('quality_rating', '-')}")


@app.command()
def stats():
    """
    Show message and media statistics.
    """
    db = get_db()
    try:
        from wa_inbox.persistence.repo import InboxRepository

        repo = InboxRepository(db)
        messages = repo.message_stats()
        media = repo.media_stats()

        table = Table(title="Inbox Statistics")
        table.add_column("Metric", style="dim")
        table.add_column("Value", justify="right")

        table.add_row("Conversations", str(messages["total_conversations"]))
        table.add_row("Messages", str(messages["total_messages"]))
        table.add_row("  incoming", str(messages["incoming_messages"]))
        table.add_row("  outgoing", str(messages["outgoing_messages"]))
        table.add_row("  last 24h", str(messages["recent_messages"]))
        for message_type, count in messages["messages_by_type"].items():
            table.add_row(f"  {message_type}", str(count))
        table.add_row("Media files", str(media["total_files"]))
        table.add_row("  failed", str(media["failed"]))
        table.add_row("Media size (bytes)", str(media["total_size"]))
        table.add_row("Thumbnails", str(media["total_thumbnails"]))

        console.print(table)
    finally:
        db.close()


@app.command()
def send_test(
    to: str = typer.Argument(..., help="Recipient phone number (digits, E.164 without +)"),
    text: str = typer.Option("Hello from WhatsApp Inbox!", help="Message text"),
):
    """
    Send a test message and record it in the conversation.
    """
    from wa_inbox.contracts.payloads import SendMessageRequest
    from wa_inbox.errors import ConfigurationError
    from wa_inbox.providers.meta_cloud.client import MetaCloudClient
    from wa_inbox.service.outbound_handler import OutboundHandler

    settings = get_settings()
    db = get_db()

    try:
        async def send():
            client = MetaCloudClient(
                base_url=settings.GRAPH_API_BASE_URL,
                timeout=settings.HTTP_TIMEOUT,
            )
            try:
                handler = OutboundHandler(db, client, get_config_provider())
                return await handler.send(SendMessageRequest(to=to, text=text))
            finally:
                await client.close()

        try:
            result = asyncio.run(send())
        except ConfigurationError as e:
            rprint(f"[red]{e}[/red]")
            raise typer.Exit(1)

        if result.response.success:
            rprint("[green]Message sent successfully![/green]")
            rprint(f"  Message ID: {result.response.message_id}")
        else:
            rprint("[red]Failed to send message[/red]")
            rprint(f"  Error: {result.response.error_message}")
            rprint(f"  Code: {result.response.error_code}")
            raise typer.Exit(1)

    finally:
        db.close()


@app.command()
def list_conversations(
    limit: int = typer.Option(20, help="Maximum number of conversations to show"),
):
    """
    List conversations, most recently active first.
    """
    db = get_db()

    try:
        from wa_inbox.persistence.repo import InboxRepository

        repo = InboxRepository(db)
        conversations = repo.list_conversations(limit=limit)

        if not conversations:
            rprint("[yellow]No conversations found[/yellow]")
            raise typer.Exit(0)

        table = Table(title="Conversations")
        table.add_column("ID", style="dim")
        table.add_column("Phone")
        table.add_column("Name")
        table.add_column("Last Message")
        table.add_column("Last Activity")

        for conv in conversations:
            last = repo.get_last_message(conv.id)
            preview = (last.content or f"[{last.message_type}]") if last else "-"
            table.add_row(
                str(conv.id),
                conv.phone_number,
                conv.display_name or "-",
                preview[:40],
                conv.last_message_at.strftime("%Y-%m-%d %H:%M") if conv.last_message_at else "-",
            )

        console.print(table)

    finally:
        db.close()


@app.command()
def cleanup_media(
    days: int = typer.Option(30, help="Delete media older than this many days"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
):
    """
    Delete stored media files and thumbnails older than N days.

    Messages are kept; their media link is cleared.
    """
    if not force:
        confirm = typer.confirm(f"Delete media older than {days} days?")
        if not confirm:
            rprint("[yellow]Cancelled[/yellow]")
            raise typer.Exit(0)

    db = get_db()
    try:
        deleted = get_media_store().cleanup_older_than(db, days)
        rprint(f"[green]Deleted {deleted} media files[/green]")
    finally:
        db.close()


@app.command()
def verify_media():
    """
    Check that every stored media file still exists on disk.
    """
    db = get_db()
    try:
        missing = get_media_store().verify_files(db)
        if missing:
            rprint(f"[yellow]{len(missing)} media files missing, marked failed:[/yellow]")
            for media_file_id in missing:
                rprint(f"  {media_file_id}")
        else:
            rprint("[green]All media files present[/green]")
    finally:
        db.close()


if __name__ == "__main__":
    app()
