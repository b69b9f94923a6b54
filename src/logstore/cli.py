"""logstore CLI — operator access to the log-replay stores.

Commands:
    logstore init [NAME]            create logstore.toml + storage dirs
    logstore status                 accounts and per-user object counts
    logstore check                  blob-vs-log consistency report
    logstore log show LOG           dump raw mutation records
    logstore tree ls|add|mv|rename|rm|path|cat
    logstore files ls|put|cat|rm
    logstore users add|ls|passwd|role|rm|history|verify
"""

from __future__ import annotations

import contextlib
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import click

from logstore.config import StoreConfig, init_config, load_config
from logstore.consistency import check_files, check_tree
from logstore.context import RequestContext, open_users
from logstore.errors import StoreError
from logstore.models import Principal, new_id

if TYPE_CHECKING:
    from collections.abc import Iterator

    from logstore.files import FlatBlobStore
    from logstore.models import LogicalObject
    from logstore.tree import TreeStore
    from logstore.users import UserStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_cfg() -> StoreConfig:
    try:
        return load_config()
    except Exception as exc:
        raise click.ClickException(str(exc)) from exc


@contextlib.contextmanager
def _store_errors() -> Iterator[None]:
    try:
        yield
    except StoreError as exc:
        raise click.ClickException(str(exc)) from exc


def _request(user: str) -> RequestContext:
    cfg = _load_cfg()
    account = open_users(cfg).get_by_login(user)
    if account is None:
        msg = f"Unknown user: {user}"
        raise click.ClickException(msg)
    principal = Principal(uuid=account.uuid, login=account.login, role=account.role)
    return RequestContext(config=cfg, principal=principal)


def _tree(user: str) -> TreeStore:
    return _request(user).tree()


def _files(user: str) -> FlatBlobStore:
    return _request(user).files()


def _users() -> UserStore:
    return open_users(_load_cfg())


def _require_user(store: UserStore, login: str) -> str:
    account = store.get_by_login(login)
    if account is None:
        msg = f"Unknown user: {login}"
        raise click.ClickException(msg)
    return account.uuid


def _print_objects(objects: list[LogicalObject], title: str) -> None:
    from rich.console import Console
    from rich.table import Table

    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Title")
    for obj in objects:
        table.add_row(obj.item_id, obj.title)
    Console().print(table)


user_option = click.option(
    "--user", "-u", default="admin", show_default=True, help="Login whose namespace to use",
)


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="logstore")
@click.option("--verbose", "-v", count=True, help="-v for INFO, -vv for DEBUG logging")
def cli(verbose: int) -> None:
    """logstore — objects replayed from append-only mutation logs."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG if verbose > 1 else logging.INFO,
            format="%(asctime)s %(name)s %(message)s",
        )


# ---------------------------------------------------------------------------
# logstore init / status / check
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("name", required=False)
@click.option("--dir", "root", default=".", show_default=True, help="Project root")
def init(name: str | None, root: str) -> None:
    """Create logstore.toml and the storage directories."""
    root_path = Path(root).resolve()
    try:
        config_path = init_config(root_path, name=name)
        click.echo(f"Created {config_path}")
    except FileExistsError:
        click.echo("logstore.toml already exists — skipping init")

    cfg = load_config(root_path)
    cfg.ensure_dirs()
    users = open_users(cfg)
    click.echo(f"Storage dir : {cfg.storage_dir}")
    click.echo(f"Accounts    : {len(users.all_users())}")


@cli.command()
def status() -> None:
    """Show accounts and how many objects each one holds."""
    from rich.console import Console
    from rich.table import Table

    cfg = _load_cfg()
    table = Table(title=f"logstore — {cfg.name}", show_header=True, header_style="bold")
    table.add_column("Login", no_wrap=True)
    table.add_column("Role", style="dim")
    table.add_column("Tree items", justify="right")
    table.add_column("Files", justify="right")

    for account in _users().all_users():
        ctx = RequestContext(
            config=cfg,
            principal=Principal(uuid=account.uuid, login=account.login, role=account.role),
        )
        table.add_row(
            account.login,
            account.role,
            str(len(ctx.tree().active_items())),
            str(len(ctx.files().list_files())),
        )
    Console().print(table)
    click.echo(f"Config: {cfg.config_path}")


@cli.command()
@user_option
def check(user: str) -> None:
    """Report blobs and log entries that disagree (exit 1 if any)."""
    ctx = _request(user)
    clean = True
    for label, report in (("tree", check_tree(ctx.tree())), ("files", check_files(ctx.files()))):
        click.echo(f"[{label}]")
        for key, count in report.summary().items():
            click.echo(f"  {key:<17} {count}")
        for item_id in report.orphan_blobs:
            click.echo(f"  orphan blob     : {item_id}")
        for item_id in report.missing_blobs:
            click.echo(f"  missing blob    : {item_id}")
        for item_id in report.dangling_parents:
            click.echo(f"  dangling parent : {item_id}")
        for item_id in report.stale_checksums:
            click.echo(f"  stale checksum  : {item_id}")
        clean = clean and report.ok
    if not clean:
        raise click.exceptions.Exit(1)


# ---------------------------------------------------------------------------
# logstore log
# ---------------------------------------------------------------------------


@cli.group("log")
def log_group() -> None:
    """Inspect raw mutation logs."""


@log_group.command("show")
@click.argument(
    "log_name",
    type=click.Choice(["tree-index", "tree-names", "files-names", "checksums", "users"]),
)
@click.option("--id", "item_id", default=None, help="Only records for this id")
@user_option
def log_show(log_name: str, item_id: str | None, user: str) -> None:
    """Print records in file order."""
    if log_name == "users":
        log = _users().log
    elif log_name.startswith("tree-"):
        tree_store = _tree(user)
        log = tree_store.index if log_name == "tree-index" else tree_store.names
    else:
        files_store = _files(user)
        log = files_store.names if log_name == "files-names" else files_store.checksums.log

    records = log.history(item_id) if item_id else log.records()
    for r in records:
        values = r.values
        if log_name == "users":
            # never print password hashes
            values = (values[0], "***" if values[1] != "null" else "null", values[2])
        click.echo(",".join((r.action, r.id, *values)))


# ---------------------------------------------------------------------------
# logstore tree
# ---------------------------------------------------------------------------


@cli.group()
def tree() -> None:
    """Hierarchical items (index.log + names.log)."""


@tree.command("ls")
@click.argument("parent", required=False)
@user_option
def tree_ls(parent: str | None, user: str) -> None:
    """List children of PARENT (default: root)."""
    store = _tree(user)
    parent_id = parent or store.root_id
    with _store_errors():
        title = store.get(parent_id).title
    _print_objects(store.list_children(parent_id), title=title)


@tree.command("add")
@click.argument("title")
@click.option("--parent", "-p", default=None, help="Parent id (default: root)")
@click.option("--id", "item_id", default=None, help="Item id (default: new uuid)")
@click.option("--file", "source", type=click.Path(exists=True, dir_okay=False, path_type=Path), default=None)
@user_option
def tree_add(title: str, parent: str | None, item_id: str | None, source: Path | None, user: str) -> None:
    """Create an item under a parent."""
    store = _tree(user)
    content = source.read_bytes() if source else b""
    with _store_errors():
        obj = store.create(item_id or new_id(), parent or store.root_id, title, content)
    click.echo(obj.id)


@tree.command("mv")
@click.argument("item_id")
@click.argument("parent")
@user_option
def tree_mv(item_id: str, parent: str, user: str) -> None:
    """Move ITEM_ID under PARENT."""
    with _store_errors():
        moved = _tree(user).move(item_id, parent)
    click.echo("Moved" if moved else "Already there")


@tree.command("rename")
@click.argument("item_id")
@click.argument("title")
@user_option
def tree_rename(item_id: str, title: str, user: str) -> None:
    with _store_errors():
        renamed = _tree(user).rename(item_id, title)
    click.echo("Renamed" if renamed else "Unchanged")


@tree.command("rm")
@click.argument("item_id")
@click.option("--parent", "-p", default=None, help="Parent to record (default: current parent)")
@user_option
def tree_rm(item_id: str, parent: str | None, user: str) -> None:
    """Delete an item and its whole subtree."""
    store = _tree(user)
    with _store_errors():
        if parent is None:
            parent = store.last_parent(item_id) or store.root_id
        deleted = store.delete(item_id, parent)
    for d in deleted:
        click.echo(f"deleted {d}")


@tree.command("path")
@click.argument("item_id")
@user_option
def tree_path(item_id: str, user: str) -> None:
    """Print the path from the root to ITEM_ID."""
    with _store_errors():
        path = _tree(user).get_full_path(item_id)
    click.echo(" / ".join(entry.title or entry.id for entry in path))


@tree.command("cat")
@click.argument("item_id")
@user_option
def tree_cat(item_id: str, user: str) -> None:
    with _store_errors():
        data = _tree(user).get_content(item_id)
    click.echo(data, nl=False)


# ---------------------------------------------------------------------------
# logstore files
# ---------------------------------------------------------------------------


@cli.group()
def files() -> None:
    """Flat titled files (names.log + checksums.log)."""


@files.command("ls")
@click.option("--ext", "extensions", multiple=True, help="Only these extensions (repeatable)")
@user_option
def files_ls(extensions: tuple[str, ...], user: str) -> None:
    store = _files(user)
    _print_objects(store.list_files_by_extension(*extensions), title="files")


@files.command("put")
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--title", "-t", default=None, help="Title (default: file name)")
@click.option("--id", "item_id", default=None, help="Id (default: new uuid + source extension)")
@user_option
def files_put(source: Path, title: str | None, item_id: str | None, user: str) -> None:
    """Store SOURCE; prints the id it ended up under."""
    store = _files(user)
    item_id = item_id or f"{new_id()}{source.suffix}"
    with _store_errors():
        stored = store.create(item_id, title or source.name, source.read_bytes())
    if stored != item_id:
        click.echo(f"Same content already stored as {stored}", err=True)
    click.echo(stored)


@files.command("cat")
@click.argument("item_id")
@user_option
def files_cat(item_id: str, user: str) -> None:
    with _store_errors():
        data = _files(user).get_content(item_id)
    click.echo(data, nl=False)


@files.command("rm")
@click.argument("item_id")
@user_option
def files_rm(item_id: str, user: str) -> None:
    with _store_errors():
        deleted = _files(user).delete(item_id)
    if not deleted:
        msg = f"File not found: {item_id}"
        raise click.ClickException(msg)
    click.echo(f"deleted {item_id}")


# ---------------------------------------------------------------------------
# logstore users
# ---------------------------------------------------------------------------


@cli.group()
def users() -> None:
    """Accounts (users.log)."""


@users.command("add")
@click.argument("login")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
@click.option("--role", default=None, help="Role (default from config)")
def users_add(login: str, password: str, role: str | None) -> None:
    with _store_errors():
        new_uuid = _users().create_user(login, password, role)
    click.echo(new_uuid)


@users.command("ls")
@click.option("--role", default=None, help="Only accounts with this role")
def users_ls(role: str | None) -> None:
    from rich.console import Console
    from rich.table import Table

    store = _users()
    accounts = store.get_by_role(role) if role else store.all_users()
    table = Table(title="users", show_header=True, header_style="bold")
    table.add_column("UUID", style="dim", no_wrap=True)
    table.add_column("Login")
    table.add_column("Role")
    for account in accounts:
        table.add_row(account.uuid, account.login, account.role)
    Console().print(table)


@users.command("passwd")
@click.argument("login")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
def users_passwd(login: str, password: str) -> None:
    store = _users()
    with _store_errors():
        store.update_user(_require_user(store, login), secret=password)
    click.echo("Password updated")


@users.command("role")
@click.argument("login")
@click.argument("role")
def users_role(login: str, role: str) -> None:
    store = _users()
    with _store_errors():
        store.update_user(_require_user(store, login), role=role)
    click.echo(f"{login} is now {role}")


@users.command("rm")
@click.argument("login")
def users_rm(login: str) -> None:
    store = _users()
    with _store_errors():
        store.delete_user(_require_user(store, login))
    click.echo(f"deleted {login}")


@users.command("history")
@click.argument("login")
def users_history(login: str) -> None:
    """Every users.log record carrying LOGIN."""
    for entry in _users().get_history(login, by_uuid=False):
        pw = "password" if entry.has_password else "-"
        click.echo(f"{entry.action}  {entry.uuid}  {entry.login}  {entry.role}  {pw}")


@users.command("verify")
@click.argument("login")
@click.option("--password", prompt=True, hide_input=True)
def users_verify(login: str, password: str) -> None:
    """Check a password (exit 1 if wrong)."""
    if not _users().verify_credentials(login, password):
        click.echo("invalid credentials", err=True)
        raise click.exceptions.Exit(1)
    click.echo("ok")
