"""CLI interface for echosync."""

import json
import logging
from pathlib import Path
from typing import Any, Optional

import click
from rich.progress import Progress, SpinnerColumn, TextColumn

from .config import (
    WebDAVCredentials,
    get_config_dir,
    get_config_path,
    get_db_path,
    load_settings,
    save_settings,
)
from .exceptions import ConfigError, InvalidRecordError, LocalStoreError
from .models import Collection, Record, validate_record
from .output import OutputFormatter
from .store import LocalStore
from .sync import SyncEngine, SyncResult, SyncStateManager
from .utils import format_timestamp
from .webdav import WebDAVClient

logger = logging.getLogger(__name__)

COLLECTION_CHOICE = click.Choice([c.value for c in Collection])


def _open_store(ctx: Any) -> LocalStore:
    out: OutputFormatter = ctx.obj["out"]
    store = LocalStore(ctx.obj["db_path"])
    if not store.is_open:
        out.error(f"Cannot open local store at {ctx.obj['db_path']}")
        ctx.exit(1)
    return store


def _build_engine(ctx: Any, store: LocalStore) -> SyncEngine:
    out: OutputFormatter = ctx.obj["out"]
    try:
        settings = load_settings()
    except ConfigError as e:
        out.error(str(e))
        ctx.exit(1)
    return SyncEngine(
        store,
        settings,
        state_manager=SyncStateManager(get_config_dir() / "sync_state"),
    )


def _summary(record: Record, collection: str) -> str:
    if collection == Collection.HISTORY.value:
        text = (record.get("challenge") or {}).get("english", "")
    else:
        text = record.get("nativeSegment", "")
    return text if len(text) <= 60 else text[:57] + "..."


def _report_result(out: OutputFormatter, result: SyncResult, title: str) -> None:
    if out.json_output:
        out.output_json(result.to_dict())
        return
    if result.skipped:
        out.warning("Remote sync is disabled, using local data")
        return
    rows = [
        {
            "collection": name,
            "mode": stats.mode.value,
            "records": stats.total_records,
            "uploaded": stats.pages_uploaded,
            "downloaded": stats.pages_downloaded,
        }
        for name, stats in result.stats.items()
    ]
    if not out.quiet:
        out.output_table(
            rows,
            ["collection", "mode", "records", "uploaded", "downloaded"],
            {
                "collection": "Collection",
                "mode": "Mode",
                "records": "Records",
                "uploaded": "Pages Uploaded",
                "downloaded": "Pages Downloaded",
            },
            title=title,
        )


@click.group()
@click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False),
    envvar="ECHOSYNC_DB_PATH",
    help="Local database file",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="echosync")
@click.pass_context
def main(
    ctx: Any,
    db_path: Optional[str],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """echosync - Keep learning history and notebook in sync over WebDAV."""
    ctx.ensure_object(dict)
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["db_path"] = Path(db_path) if db_path else get_db_path()

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("echosync").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.option("--url", prompt="WebDAV server URL (blank for local proxy)", default="")
@click.option("--username", prompt="Username", default="")
@click.option("--password", prompt="Password", hide_input=True, default="")
@click.option("--disable", is_flag=True, help="Save settings with sync turned off")
@click.pass_context
def init(ctx: Any, url: str, username: str, password: str, disable: bool) -> None:
    """Configure the WebDAV server.

    Stores settings in ~/.config/echosync/webdav.json.
    """
    out: OutputFormatter = ctx.obj["out"]

    if not disable:
        credentials = WebDAVCredentials(url=url, username=username, password=password)
        out.info(f"Checking connection to {credentials.base_url}...")
        with WebDAVClient.from_credentials(credentials) as client:
            reachable = client.probe()
        if reachable:
            out.success("✓ Connection successful")
        else:
            out.error("Could not connect with these settings")
            if not click.confirm("Save settings anyway?", default=False):
                out.warning("Configuration cancelled.")
                ctx.exit(1)

    try:
        path = save_settings(url, username, password, enabled=not disable)
    except OSError as e:
        out.error(f"Could not save settings: {e}")
        ctx.exit(1)

    out.print_summary(
        "Initialization Complete",
        [
            ("Sync", "disabled" if disable else "enabled"),
            ("Config file", str(path)),
        ],
    )


@main.command()
@click.option("--check", is_flag=True, help="Also probe the WebDAV server")
@click.pass_context
def status(ctx: Any, check: bool) -> None:
    """Show sync settings, local record counts and the last sync."""
    out: OutputFormatter = ctx.obj["out"]
    try:
        settings = load_settings()
    except ConfigError as e:
        out.error(str(e))
        ctx.exit(1)

    store = _open_store(ctx)
    try:
        counts = {c.value: store.count(c) for c in Collection}
    except LocalStoreError as e:
        out.error(str(e))
        ctx.exit(1)
    finally:
        store.close()

    info: dict[str, Any] = {
        "sync_enabled": settings.enabled,
        "config_file": str(get_config_path()),
        "database": str(ctx.obj["db_path"]),
        "records": counts,
    }
    if isinstance(settings, WebDAVCredentials):
        info["server"] = settings.base_url
        info["username"] = settings.username
        state = SyncStateManager(get_config_dir() / "sync_state").load_state(
            settings.base_url
        )
        info["last_full_sync"] = state.last_full_sync if state else None
        info["last_push"] = state.last_push if state else None
        if check:
            with WebDAVClient.from_credentials(settings) as client:
                info["connected"] = client.probe()

    if out.json_output:
        out.output_json(info)
        return

    items = [
        ("Sync", "enabled" if settings.enabled else "disabled"),
        ("Database", info["database"]),
        ("History records", counts[Collection.HISTORY.value]),
        ("Notebook entries", counts[Collection.NOTEBOOK.value]),
    ]
    if "server" in info:
        items.append(("Server", info["server"]))
        items.append(("Username", info["username"] or "-"))
        items.append(("Last full sync", info["last_full_sync"] or "never"))
        items.append(("Last push", info["last_push"] or "never"))
    if "connected" in info:
        items.append(("Connection", "ok" if info["connected"] else "failed"))
    out.print_summary("echosync status", items)


@main.command()
@click.pass_context
def sync(ctx: Any) -> None:
    """Run a full sync: pull, merge, repaginate and push."""
    out: OutputFormatter = ctx.obj["out"]
    store = _open_store(ctx)
    try:
        with _build_engine(ctx, store) as engine:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                transient=True,
                disable=out.quiet or out.json_output,
            ) as progress:
                progress.add_task("Syncing with WebDAV server...", total=None)
                result = engine.full_sync()
    finally:
        store.close()

    if not result.ok:
        out.error(f"Sync failed, using local data: {result.error}")
        ctx.exit(1)
    _report_result(out, result, "Sync Complete")


@main.command()
@click.pass_context
def push(ctx: Any) -> None:
    """Upload the local collections without pulling first."""
    out: OutputFormatter = ctx.obj["out"]
    store = _open_store(ctx)
    try:
        with _build_engine(ctx, store) as engine:
            result = engine.push_changes()
    finally:
        store.close()

    if not result.ok:
        out.error(f"Push failed: {result.error}")
        ctx.exit(1)
    _report_result(out, result, "Push Complete")


@main.command(name="list")
@click.argument("collection", type=COLLECTION_CHOICE)
@click.option("--offset", type=click.IntRange(min=0), default=0, help="Records to skip")
@click.option(
    "--limit", "-n", type=click.IntRange(min=0), default=50, help="Records to show"
)
@click.pass_context
def list_records(ctx: Any, collection: str, offset: int, limit: int) -> None:
    """List local records, newest first."""
    out: OutputFormatter = ctx.obj["out"]
    store = _open_store(ctx)
    try:
        records = store.get_paged(collection, offset, limit)
        total = store.count(collection)
    except LocalStoreError as e:
        out.error(str(e))
        ctx.exit(1)
    finally:
        store.close()

    if out.json_output:
        out.output_json(records)
        return
    if not records:
        out.info(f"No {collection} records")
        return

    rows = [
        {
            "id": r["id"],
            "time": format_timestamp(r["timestamp"]),
            "summary": _summary(r, collection),
        }
        for r in records
    ]
    out.output_table(
        rows, ["id", "time", "summary"], {"id": "ID", "time": "Time", "summary": "Text"}
    )
    out.info(f"Showing {offset + 1}-{offset + len(records)} of {total}")


def _push_after_change(ctx: Any, store: LocalStore) -> None:
    out: OutputFormatter = ctx.obj["out"]
    with _build_engine(ctx, store) as engine:
        if not engine.enabled:
            return
        result = engine.push_in_background().result()
    if result.ok:
        out.success("✓ Changes pushed")
    else:
        out.warning(f"Sync failed, using local data: {result.error}")


@main.command(name="import")
@click.argument("collection", type=COLLECTION_CHOICE)
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--no-push", is_flag=True, help="Do not push after importing")
@click.pass_context
def import_records(ctx: Any, collection: str, file: Path, no_push: bool) -> None:
    """Import records from a JSON array file."""
    out: OutputFormatter = ctx.obj["out"]
    try:
        with open(file, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise InvalidRecordError("File must contain a JSON array of records")
        records = [validate_record(item) for item in data]
    except (OSError, json.JSONDecodeError, InvalidRecordError) as e:
        out.error(f"Cannot import {file}: {e}")
        ctx.exit(1)

    store = _open_store(ctx)
    try:
        written = store.put_batch(collection, records)
        out.success(f"Imported {written} {collection} record(s)")
        if not no_push:
            _push_after_change(ctx, store)
    except LocalStoreError as e:
        out.error(str(e))
        ctx.exit(1)
    finally:
        store.close()


@main.command()
@click.argument("collection", type=COLLECTION_CHOICE)
@click.argument("record_id")
@click.option("--no-push", is_flag=True, help="Do not push after deleting")
@click.pass_context
def delete(ctx: Any, collection: str, record_id: str, no_push: bool) -> None:
    """Delete a local record.

    The record disappears from the server with the next push. Other
    devices that still hold it will bring it back on their next sync.
    """
    out: OutputFormatter = ctx.obj["out"]
    store = _open_store(ctx)
    try:
        if not store.delete(collection, record_id):
            out.error(f"No {collection} record with id {record_id}")
            ctx.exit(1)
        out.success(f"Deleted {record_id}")
        if not no_push:
            _push_after_change(ctx, store)
    except LocalStoreError as e:
        out.error(str(e))
        ctx.exit(1)
    finally:
        store.close()


if __name__ == "__main__":
    main()
