"""CLI interface for ghassets."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import click
from rich.markup import escape
from rich.syntax import Syntax
from rich.tree import Tree

from .api import GitHubClient
from .auth import SIGN_IN_MESSAGE, TokenProvider
from .config import CONFIG_FILE_NAME, load_settings
from .exceptions import (
    AssetSyncError,
    AuthenticationError,
    ConfigError,
    NotFoundError,
    RateLimitError,
)
from .output import OutputFormatter
from .sync import (
    Asset,
    AssetStatus,
    AssetTreeNode,
    SyncEngine,
    SyncErrorType,
    SyncResult,
    TreeNodeType,
    UpdateOutcome,
)
from .utils import build_html_url

logger = logging.getLogger(__name__)

T = TypeVar("T")

STATUS_MARKERS = {
    AssetStatus.UP_TO_DATE: "[green]✓ up to date[/green]",
    AssetStatus.UPDATE_AVAILABLE: "[cyan]↑ update available[/cyan]",
    AssetStatus.LOCALLY_MODIFIED: "[yellow]! locally modified[/yellow]",
    AssetStatus.NOT_INSTALLED: "[dim]○ not installed[/dim]",
}

NOT_FOUND_HINT = f"Check the repository settings in {CONFIG_FILE_NAME}."


def describe_sync_error(result: SyncResult) -> str:
    """User-facing text for a failed repository sync."""
    if result.error_type == SyncErrorType.AUTH:
        return SIGN_IN_MESSAGE
    if result.error_type == SyncErrorType.NOT_FOUND:
        return f"{result.error} {NOT_FOUND_HINT}"
    if result.error_type == SyncErrorType.RATE_LIMIT and result.reset_at:
        return f"Rate limit exceeded. Try again after {result.reset_at:%H:%M:%S}."
    return result.error or "Unknown error"


def describe_error(error: Exception) -> str:
    """User-facing text for an exception raised by an asset operation."""
    if isinstance(error, AuthenticationError):
        return SIGN_IN_MESSAGE
    if isinstance(error, NotFoundError):
        return f"{error} {NOT_FOUND_HINT}"
    if isinstance(error, RateLimitError) and error.reset_at:
        return f"Rate limit exceeded. Try again after {error.reset_at:%H:%M:%S}."
    return str(error)


def _asset_to_dict(asset: Asset) -> dict[str, Any]:
    return {
        "repository": asset.repo_config.repo_id,
        "remotePath": asset.remote_path,
        "localPath": asset.local_path,
        "status": asset.status.value,
        "isBundle": asset.is_bundle,
        "remoteSha": asset.remote_sha,
    }


def _result_to_dict(result: SyncResult) -> dict[str, Any]:
    return {
        "repository": result.repo_config.repo_id,
        "label": result.repo_config.label,
        "error": result.error,
        "errorType": result.error_type.value if result.error_type else None,
        "assets": [_asset_to_dict(asset) for asset in result.assets],
    }


def _add_tree_nodes(parent: Tree, node: AssetTreeNode) -> None:
    label = escape(node.label)
    if node.type == TreeNodeType.FOLDER:
        branch = parent.add(f"[bold]{label}/[/bold]")
        for child in node.children:
            _add_tree_nodes(branch, child)
        return

    if node.asset is None:
        return
    marker = STATUS_MARKERS[node.asset.status]
    if node.type == TreeNodeType.BUNDLE:
        count = len(node.asset.bundle_files)
        parent.add(f"[magenta]{label}[/magenta] ({count} files)  {marker}")
    else:
        parent.add(f"{label}  {marker}")


def render_tree(roots: list[AssetTreeNode], results: list[SyncResult]) -> Tree:
    """Build a rich Tree from presentation tree roots."""
    errors = {result.repo_config.repo_id: result for result in results if not result.ok}
    tree = Tree("[bold]Assets[/bold]", guide_style="cyan")
    for root in roots:
        if root.type == TreeNodeType.MESSAGE:
            message = escape(root.error_message or "")
            tree.add(f"[dim]{escape(root.label)}: {message}[/dim]")
        elif root.type == TreeNodeType.ERROR:
            result = (
                errors.get(root.repo_config.repo_id) if root.repo_config else None
            )
            message = describe_sync_error(result) if result else root.error_message
            tree.add(f"[red]{escape(root.label)}: {escape(message or '')}[/red]")
        else:
            branch = tree.add(f"[bold blue]{escape(root.label)}[/bold blue]")
            if not root.children:
                branch.add("[dim]No matching assets[/dim]")
            for child in root.children:
                _add_tree_nodes(branch, child)
    return tree


def _prompt_for_token() -> str:
    return click.prompt("GitHub token", hide_input=True)


def _create_engine(ctx: Any) -> SyncEngine:
    """Create a sync engine for the workspace selected on the command line.

    Raises:
        ConfigError: If the workspace configuration is malformed
    """
    workspace: Path = ctx.obj["workspace"]
    settings = load_settings(workspace)
    token_provider = TokenProvider(
        token=ctx.obj["token"] or settings.token,
        enterprise_url=settings.enterprise_url,
        prompt=_prompt_for_token,
    )
    client = GitHubClient(token_provider, api_url=settings.api_base_url)
    return SyncEngine(client, settings, workspace)


def _run(engine: SyncEngine, action: Callable[[SyncEngine], Awaitable[T]]) -> T:
    """Run an async action against the engine and close the client afterwards."""

    async def runner() -> T:
        try:
            return await action(engine)
        finally:
            await engine.client.aclose()

    return asyncio.run(runner())


def _select_assets(
    engine: SyncEngine, paths: tuple[str, ...], out: OutputFormatter
) -> Optional[list[Asset]]:
    """Resolve command line paths to assets of the last sync.

    Returns:
        Matching assets, or None if any path matched nothing
    """
    assets: list[Asset] = []
    for path in paths:
        asset = engine.find_asset(path)
        if asset is None:
            out.error(f"No asset found for '{path}'")
            return None
        assets.append(asset)
    return assets


def _report_sync_errors(results: list[SyncResult], out: OutputFormatter) -> None:
    for result in results:
        if not result.ok:
            out.warning(f"{result.repo_config.label}: {describe_sync_error(result)}")


@click.group()
@click.option(
    "--workspace",
    "-w",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    help="Workspace directory (default: current directory)",
)
@click.option("--token", "-t", envvar="GHASSETS_TOKEN", help="GitHub access token")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="ghassets")
@click.pass_context
def main(
    ctx: Any,
    workspace: Path,
    token: Optional[str],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """ghassets - Sync shared assets from GitHub repositories into a workspace."""
    ctx.ensure_object(dict)
    ctx.obj["workspace"] = workspace.resolve()
    ctx.obj["token"] = token
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("ghassets").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.option(
    "--background",
    is_flag=True,
    help="Silent check: never prompt and never report errors",
)
@click.pass_context
def status(ctx: Any, background: bool) -> None:
    """Show every configured asset and its sync status."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        engine = _create_engine(ctx)
    except ConfigError as e:
        if background:
            logger.debug(f"Background check skipped: {e}")
            return
        out.error(str(e))
        ctx.exit(1)

    results = _run(engine, lambda e: e.sync(silent=background))
    update_count = engine.get_update_count()

    if background:
        if update_count and not out.json_output:
            out.info(f"{update_count} update(s) available")
        elif out.json_output:
            out.output_json({"updates": update_count})
        return

    if out.json_output:
        out.output_json(
            {
                "repositories": [_result_to_dict(result) for result in results],
                "updates": update_count,
            }
        )
    else:
        out.print(render_tree(engine.build_tree(), results))
        out.info(f"\n{update_count} update(s) available")

    if any(not result.ok for result in results):
        ctx.exit(1)


@main.command(name="list")
@click.option(
    "--status",
    "status_filter",
    type=click.Choice([status.value for status in AssetStatus]),
    default=None,
    help="Only list assets with this status",
)
@click.pass_context
def list_assets(ctx: Any, status_filter: Optional[str]) -> None:
    """List assets as a flat table."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        engine = _create_engine(ctx)
    except ConfigError as e:
        out.error(str(e))
        ctx.exit(1)

    results = _run(engine, lambda e: e.sync())
    _report_sync_errors(results, out)

    if status_filter:
        assets = engine.collect_by_status(AssetStatus(status_filter))
    else:
        assets = engine.get_all_assets()

    if not assets and not out.json_output:
        out.info("No assets found")
        return

    out.output_table(
        [_asset_to_dict(asset) for asset in assets],
        ["repository", "remotePath", "localPath", "status"],
        {
            "repository": "Repository",
            "remotePath": "Remote path",
            "localPath": "Local path",
            "status": "Status",
        },
    )


@main.command()
@click.argument("paths", nargs=-1)
@click.option("--all", "all_assets", is_flag=True, help="Download every new asset")
@click.pass_context
def download(ctx: Any, paths: tuple[str, ...], all_assets: bool) -> None:
    """Download assets by remote or local path."""
    out: OutputFormatter = ctx.obj["out"]
    if not paths and not all_assets:
        out.error("Specify asset paths or --all")
        ctx.exit(1)

    try:
        engine = _create_engine(ctx)
    except ConfigError as e:
        out.error(str(e))
        ctx.exit(1)

    async def action(engine: SyncEngine) -> Optional[list[Asset]]:
        await engine.sync()
        if all_assets:
            return await engine.download_all()
        selected = _select_assets(engine, paths, out)
        if selected is None:
            return None
        for asset in selected:
            await engine.download(asset)
        return selected

    try:
        downloaded = _run(engine, action)
    except (AssetSyncError, OSError) as e:
        out.error(f"Download failed: {describe_error(e)}")
        ctx.exit(1)

    if downloaded is None:
        ctx.exit(1)

    if out.json_output:
        out.output_json({"downloaded": [_asset_to_dict(a) for a in downloaded]})
        return
    for asset in downloaded:
        out.success(f"✓ Downloaded {asset.local_path}")
    if not downloaded:
        out.info("Nothing to download")


@main.command()
@click.argument("paths", nargs=-1)
@click.option("--all", "all_assets", is_flag=True, help="Update every asset")
@click.option("--force", is_flag=True, help="Overwrite local changes")
@click.pass_context
def update(ctx: Any, paths: tuple[str, ...], all_assets: bool, force: bool) -> None:
    """Update installed assets to their remote version.

    Assets with local changes are reported as conflicts and left untouched
    unless --force is given.
    """
    out: OutputFormatter = ctx.obj["out"]
    if not paths and not all_assets:
        out.error("Specify asset paths or --all")
        ctx.exit(1)

    try:
        engine = _create_engine(ctx)
    except ConfigError as e:
        out.error(str(e))
        ctx.exit(1)

    async def action(engine: SyncEngine) -> Optional[tuple[list[Asset], list[Asset]]]:
        await engine.sync()
        if all_assets:
            report = await engine.update_all(force=force)
            return report.updated, report.conflicts

        selected = _select_assets(engine, paths, out)
        if selected is None:
            return None
        updated: list[Asset] = []
        conflicts: list[Asset] = []
        for asset in selected:
            if asset.status == AssetStatus.NOT_INSTALLED:
                out.warning(f"{asset.local_path} is not installed, use download")
            elif asset.status == AssetStatus.UP_TO_DATE:
                out.info(f"{asset.local_path} is already up to date")
            elif force:
                await engine.force_update(asset)
                updated.append(asset)
            elif await engine.update(asset) == UpdateOutcome.UPDATED:
                updated.append(asset)
            else:
                conflicts.append(asset)
        return updated, conflicts

    try:
        outcome = _run(engine, action)
    except (AssetSyncError, OSError) as e:
        out.error(f"Update failed: {describe_error(e)}")
        ctx.exit(1)

    if outcome is None:
        ctx.exit(1)
    updated, conflicts = outcome

    if out.json_output:
        out.output_json(
            {
                "updated": [_asset_to_dict(a) for a in updated],
                "conflicts": [_asset_to_dict(a) for a in conflicts],
            }
        )
        return
    for asset in updated:
        out.success(f"✓ Updated {asset.local_path}")
    for asset in conflicts:
        out.warning(
            f"{asset.local_path} has local changes. Use --force to overwrite, "
            f"'ghassets skip' to keep them or 'ghassets diff' to compare."
        )
    if not updated and not conflicts:
        out.info("Nothing to update")
    elif all_assets:
        out.print_summary(
            "Update summary", [("Updated", len(updated)), ("Conflicts", len(conflicts))]
        )


@main.command()
@click.argument("paths", nargs=-1, required=True)
@click.pass_context
def skip(ctx: Any, paths: tuple[str, ...]) -> None:
    """Keep local changes and ignore the current remote version."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        engine = _create_engine(ctx)
    except ConfigError as e:
        out.error(str(e))
        ctx.exit(1)

    async def action(engine: SyncEngine) -> Optional[list[tuple[Asset, bool]]]:
        await engine.sync()
        selected = _select_assets(engine, paths, out)
        if selected is None:
            return None
        return [(asset, await engine.skip(asset)) for asset in selected]

    try:
        skipped = _run(engine, action)
    except (AssetSyncError, OSError) as e:
        out.error(f"Skip failed: {describe_error(e)}")
        ctx.exit(1)

    if skipped is None:
        ctx.exit(1)
    for asset, done in skipped:
        if done:
            out.success(f"✓ Skipped remote version of {asset.local_path}")
        else:
            out.warning(f"{asset.local_path} is not installed")


@main.command()
@click.argument("paths", nargs=-1, required=True)
@click.pass_context
def remove(ctx: Any, paths: tuple[str, ...]) -> None:
    """Delete local copies of assets."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        engine = _create_engine(ctx)
    except ConfigError as e:
        out.error(str(e))
        ctx.exit(1)

    async def action(engine: SyncEngine) -> Optional[list[Asset]]:
        await engine.sync()
        selected = _select_assets(engine, paths, out)
        if selected is None:
            return None
        for asset in selected:
            await engine.remove(asset)
        return selected

    try:
        removed = _run(engine, action)
    except (AssetSyncError, OSError) as e:
        out.error(f"Remove failed: {e}")
        ctx.exit(1)

    if removed is None:
        ctx.exit(1)
    for asset in removed:
        out.success(f"✓ Removed {asset.local_path}")


@main.command()
@click.argument("path")
@click.pass_context
def diff(ctx: Any, path: str) -> None:
    """Show the differences between the local copy and the remote version."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        engine = _create_engine(ctx)
    except ConfigError as e:
        out.error(str(e))
        ctx.exit(1)

    async def action(engine: SyncEngine) -> Optional[tuple[Asset, str]]:
        await engine.sync()
        selected = _select_assets(engine, (path,), out)
        if selected is None:
            return None
        return selected[0], await engine.operations.diff(selected[0])

    try:
        outcome = _run(engine, action)
    except (AssetSyncError, OSError) as e:
        out.error(f"Diff failed: {describe_error(e)}")
        ctx.exit(1)

    if outcome is None:
        ctx.exit(1)
    asset, text = outcome

    if out.json_output:
        out.output_json({"localPath": asset.local_path, "diff": text})
    elif text:
        out.print(Syntax(text, "diff", theme="ansi_dark", background_color="default"))
    else:
        out.info("No differences")


@main.command(name="open")
@click.argument("path")
@click.option("--launch", is_flag=True, help="Open the page in a web browser")
@click.pass_context
def open_asset(ctx: Any, path: str, launch: bool) -> None:
    """Print the repository web page of an asset."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        engine = _create_engine(ctx)
    except ConfigError as e:
        out.error(str(e))
        ctx.exit(1)

    async def action(engine: SyncEngine) -> Optional[list[Asset]]:
        await engine.sync()
        return _select_assets(engine, (path,), out)

    selected = _run(engine, action)
    if selected is None:
        ctx.exit(1)

    asset = selected[0]
    repo = asset.repo_config
    url = build_html_url(
        engine.settings.html_base_url,
        repo.owner,
        repo.repo,
        repo.branch,
        asset.remote_path,
    )
    if out.json_output:
        out.output_json({"url": url})
    else:
        out.print(url)
    if launch:
        click.launch(url)


if __name__ == "__main__":
    main()
