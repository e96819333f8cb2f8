"""Command-line interface for gramingest."""

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from gramingest import GramingestConfig, IngestService, save_json, __version__
from gramingest.config import LogFormat
from gramingest.exceptions import GramingestError
from gramingest.models.job import JobStatus, ScrapeJob

app = typer.Typer(
    name="gramingest",
    help="Instagram profile ingestion",
    add_completion=False,
)
console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"gramingest version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
):
    """gramingest - Instagram profile ingestion."""
    pass


def _config(quiet: bool = False) -> GramingestConfig:
    config = GramingestConfig()
    if quiet:
        config.log_format = LogFormat.JSON
        config.log_level = "ERROR"
    return config


def _run(coro):
    """Run a coroutine, turning library errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except GramingestError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)


@app.command()
def scrape(
    username: str = typer.Argument(..., help="Instagram username to scrape"),
    wait: bool = typer.Option(
        False, "--wait", "-w", help="Poll until the job finishes and ingest its data"
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress log output, only show results"
    ),
):
    """Start a scrape job for one profile."""

    async def run():
        async with IngestService(_config(quiet)) as service:
            started = await service.start_scrape(username)
            if not started.success:
                console.print(f"[red]✗[/red] Failed to start scrape: {started.error}")
                raise typer.Exit(1)

            job = started.job
            console.print(f"[green]✓[/green] Started run [bold]{job.run_id}[/bold] for @{job.profile_username}")
            if not wait:
                console.print("[dim]Check progress with: gramingest status " + job.run_id + "[/dim]")
                return

            with console.status(f"Waiting for @{job.profile_username}..."):
                await service.wait_for_jobs()

            final = service.get_job(job.run_id)
            _print_job(final or job)
            if final is None or final.status != JobStatus.SUCCEEDED:
                raise typer.Exit(1)

    _run(run())


@app.command()
def status(
    run_id: str = typer.Argument(..., help="Actor run id"),
):
    """Show the normalized status of a run."""

    async def run():
        async with IngestService(_config(quiet=True)) as service:
            run_status = await service.check_status(run_id)

            table = Table(title=f"Run {run_id}", show_header=False)
            table.add_column("Field", style="dim")
            table.add_column("Value")
            table.add_row("Status", run_status.status.value)
            table.add_row("Raw status", run_status.raw_status or "-")
            table.add_row("Dataset", run_status.dataset_id or "-")
            table.add_row("Finished", run_status.finished_at.isoformat() if run_status.finished_at else "-")
            if run_status.stats_url:
                table.add_row("Console", run_status.stats_url)
            if run_status.details_url:
                table.add_row("Items", run_status.details_url)
            console.print(table)

    _run(run())


@app.command()
def ingest(
    dataset_id: str = typer.Argument(..., help="Dataset id of a finished run"),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Save the ingestion result as JSON"
    ),
):
    """Ingest an existing dataset into the repository."""

    async def run():
        async with IngestService(_config()) as service:
            result = await service.ingest(dataset_id)

            if output:
                save_json(result, output)
                console.print(f"[dim]Saved to {output}[/dim]")

            if not result.success:
                console.print(f"[red]✗[/red] Ingestion failed: {result.error}")
                raise typer.Exit(1)

            p = result.profile
            console.print(f"\n[bold]@{p.username}[/bold]  {p.display_name}")
            console.print(f"  [blue]{p.follower_count:,}[/blue] followers · {p.following_count:,} following")
            console.print(
                f"  {result.post_count} posts saved · "
                f"{result.stored_image_count}/{result.total_image_count} images in storage"
            )
            if result.message:
                console.print(f"  [yellow]{result.message}[/yellow]")

    _run(run())


@app.command()
def profiles():
    """List ingested profiles."""

    async def run():
        async with IngestService(_config(quiet=True)) as service:
            records = await service.list_profiles()
            if not records:
                console.print("No profiles ingested yet")
                return

            table = Table(title="Profiles")
            table.add_column("Id", style="dim")
            table.add_column("Username")
            table.add_column("Followers", justify="right")
            table.add_column("Posts", justify="right")
            table.add_column("Image")
            for p in records:
                table.add_row(
                    p.id,
                    f"@{p.username}",
                    f"{p.follower_count:,}",
                    f"{p.post_count:,}",
                    "stored" if p.profile_image_stored else "[yellow]remote[/yellow]",
                )
            console.print(table)

    _run(run())


@app.command()
def posts(
    profile_id: str = typer.Argument(..., help="Profile id (see `gramingest profiles`)"),
    limit: int = typer.Option(20, "--limit", "-n", help="Max posts to show"),
):
    """List posts of one profile."""

    async def run():
        async with IngestService(_config(quiet=True)) as service:
            records = await service.list_posts(profile_id)
            console.print(f"[bold]{len(records)} posts[/bold]")
            for post in records[:limit]:
                stored = "[green]●[/green]" if post.media_stored else "[yellow]○[/yellow]"
                caption = post.caption[:60] + "..." if len(post.caption) > 60 else post.caption
                console.print(f"{stored} [dim]{post.like_count:>7,}♥[/dim]  {caption}")

    _run(run())


@app.command()
def export(
    output: Path = typer.Option(
        Path("gramingest_export.json"), "--output", "-o", help="Where to write the export"
    ),
):
    """Export every ingested profile and its posts as JSON."""

    async def run():
        async with IngestService(_config(quiet=True)) as service:
            exported = await service.export_profiles()

        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json.dumps(exported, indent=2, ensure_ascii=False), encoding="utf-8")
        console.print(
            f"[green]✓[/green] Exported {exported['profiles_count']} profiles "
            f"and {exported['posts_count']} posts to {output}"
        )

    _run(run())


@app.command("migrate-images")
def migrate_images():
    """Relay images still served from the CDN into owned storage."""

    async def run():
        async with IngestService(_config()) as service:
            result = await service.migrate_images()
            if not result.success:
                console.print(f"[red]✗[/red] Migration failed: {result.error}")
                raise typer.Exit(1)
            console.print(
                f"[green]✓[/green] Migrated {result.profiles_migrated} profile images "
                f"and {result.posts_migrated} post images"
            )

    _run(run())


@app.command()
def bucket():
    """Make sure the image bucket exists."""

    async def run():
        async with IngestService(_config()) as service:
            if await service.ensure_bucket():
                console.print(f"[green]✓[/green] Bucket {service.config.bucket_name} is ready")
            else:
                console.print(f"[red]✗[/red] Bucket {service.config.bucket_name} is not available")
                raise typer.Exit(1)

    _run(run())


def _print_job(job: ScrapeJob):
    color = {
        JobStatus.SUCCEEDED: "green",
        JobStatus.RUNNING: "blue",
    }.get(job.status, "red")
    console.print(f"@{job.profile_username}: [{color}]{job.display_status}[/{color}]")
    if job.dataset_id:
        console.print(f"  [dim]dataset {job.dataset_id}[/dim]")


if __name__ == "__main__":
    app()
