"""CLI entrypoint for mediaferry tools."""

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table
from tqdm import tqdm

from mediaferry.config import (
    Env,
    FirebaseConfig,
    TransferConfig,
    load_firebase_config,
    load_transfer_config,
)
from mediaferry.logging_config import setup_logging
from mediaferry.models import BatchResult, MediaType, ProgressSnapshot, UploadRequest, UploadTask

app = typer.Typer(
    name="mediaferry",
    help="Upload raw and finished media for a job to cloud storage",
    no_args_is_help=True,
)
console = Console()

# Default config paths (src/mediaferry/cli.py -> repository root)
PACKAGE_ROOT = Path(__file__).parent.parent.parent
DEFAULT_FIREBASE_CONFIG = PACKAGE_ROOT / "configs" / "firebase.yaml"
DEFAULT_TRANSFER_CONFIG = PACKAGE_ROOT / "configs" / "transfer.yaml"


def _load_configs(
    env: Env,
    firebase_path: Path,
    transfer_path: Path,
    no_direct: bool,
) -> tuple[TransferConfig, FirebaseConfig | None]:
    transfer_cfg = load_transfer_config(transfer_path) if transfer_path.exists() else TransferConfig()
    if no_direct or not firebase_path.exists():
        return transfer_cfg, None
    return transfer_cfg, load_firebase_config(firebase_path, env)


def _read_requests(
    files: list[Path],
    job: str,
    media_type: MediaType,
    category: str | None,
) -> list[UploadRequest]:
    return [
        UploadRequest(
            payload=path.read_bytes(),
            destination=job,
            file_name=path.name,
            media_type=media_type,
            category=category,
        )
        for path in files
    ]


def print_batch_result(result: BatchResult, console: Console) -> None:
    """Show uploaded and failed files."""
    table = Table(title=f"Uploaded {len(result.succeeded)}/{result.total}", show_header=True)
    table.add_column("File")
    table.add_column("Status", justify="center")
    table.add_column("Via", justify="center")
    table.add_column("Attempts", justify="right")
    table.add_column("Address / error")

    for item in result.succeeded:
        strategy = item.strategy.value if item.strategy else "-"
        table.add_row(item.file_name, "[green]ok[/green]", strategy, str(item.attempts), item.address or item.storage_path)
    for failure in result.failed:
        table.add_row(
            failure.file_name,
            "[red]failed[/red]",
            "-",
            "-",
            f"{type(failure.error).__name__}: {failure.error}",
        )

    console.print(table)


async def _run_batch(
    requests: list[UploadRequest],
    transfer_cfg: TransferConfig,
    firebase_cfg: FirebaseConfig | None,
) -> BatchResult:
    from mediaferry.firebase.storage import FirebaseStorage
    from mediaferry.pipeline.batch import BatchCoordinator
    from mediaferry.transfer_api import TransferApi

    storage = FirebaseStorage(firebase_cfg, timeout=transfer_cfg.request_timeout) if firebase_cfg else None
    bars: dict[str, tqdm] = {}

    async with TransferApi.create_client(transfer_cfg) as client:
        coordinator = BatchCoordinator(TransferApi(client, transfer_cfg), transfer_cfg, storage)
        tasks = coordinator.create_tasks(requests)
        names = {task.task_id: task.file_name for task in tasks}

        def on_progress(snapshot: ProgressSnapshot) -> None:
            bar = bars.get(snapshot.task_id)
            if bar is None:
                bar = tqdm(
                    total=snapshot.total_bytes,
                    desc=names[snapshot.task_id][:30],
                    unit="B",
                    unit_scale=True,
                    position=len(bars),
                )
                bars[snapshot.task_id] = bar
            bar.n = snapshot.bytes_transferred
            bar.set_postfix_str("relaying" if snapshot.indeterminate else f"try {snapshot.attempt}")

        try:
            return await coordinator.run_tasks(tasks, on_progress)
        finally:
            for bar in bars.values():
                bar.close()


@app.command()
def upload(
    files: Annotated[list[Path], typer.Argument(help="Files to upload", exists=True, dir_okay=False)],
    job: Annotated[str, typer.Option("--job", "-j", help="Destination job id")],
    media_type: Annotated[MediaType, typer.Option(help="raw or finished")] = MediaType.RAW,
    category: Annotated[str | None, typer.Option(help="Service category")] = None,
    env: Annotated[Env, typer.Option(help="Environment: prod or dev")] = "dev",
    config: Annotated[
        Path, typer.Option("--config", "-c", help="Firebase config path")
    ] = DEFAULT_FIREBASE_CONFIG,
    transfer_config: Annotated[Path, typer.Option(help="Transfer config path")] = DEFAULT_TRANSFER_CONFIG,
    no_direct: Annotated[bool, typer.Option("--no-direct", help="Skip direct SDK uploads")] = False,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Validate only, don't upload")] = False,
    log_level: Annotated[str | None, typer.Option(help="Log level")] = None,
):
    """Upload files to a job."""
    from mediaferry.pipeline.validation import validate_task

    setup_logging(log_level, console)
    transfer_cfg, firebase_cfg = _load_configs(env, config, transfer_config, no_direct)

    console.print(f"[bold]Target: job {job} ({media_type.value})[/bold]")
    console.print(f"  Server: {transfer_cfg.api_base_url}")
    console.print(f"  Direct uploads: {'on (' + firebase_cfg.storage_bucket + ')' if firebase_cfg else 'off'}")
    console.print(f"  Files: {len(files)}\n")

    requests = _read_requests(files, job, media_type, category)

    if dry_run:
        console.print("[yellow]DRY RUN - validating only[/yellow]\n")
        invalid = 0
        for request in requests:
            task = UploadTask.from_request(request, transfer_cfg.default_category)
            validation = validate_task(task, transfer_cfg)
            if validation.is_valid:
                console.print(f"  [green]ok[/green] {task.file_name} ({task.content_type}, {task.size} bytes)")
            else:
                invalid += 1
                errors = "; ".join(issue.error for issue in validation.issues)
                console.print(f"  [red]invalid[/red] {task.file_name}: {errors}")
        console.print(f"\nValid: {len(requests) - invalid}, Invalid: {invalid}")
        raise typer.Exit(code=1 if invalid else 0)

    result = asyncio.run(_run_batch(requests, transfer_cfg, firebase_cfg))
    print_batch_result(result, console)

    if result.failed:
        raise typer.Exit(code=1)


@app.command()
def plan(
    size: Annotated[int, typer.Argument(help="Payload size in bytes")],
    chunk_size: Annotated[int | None, typer.Option(help="Chunk size in bytes")] = None,
    transfer_config: Annotated[Path, typer.Option(help="Transfer config path")] = DEFAULT_TRANSFER_CONFIG,
):
    """Show how a payload would be split for chunked upload."""
    from mediaferry.pipeline.chunks import plan_chunks

    transfer_cfg = load_transfer_config(transfer_config) if transfer_config.exists() else TransferConfig()
    chunks = plan_chunks(size, chunk_size or transfer_cfg.chunk_size)

    table = Table(title=f"{len(chunks)} chunks", show_header=True)
    table.add_column("#", style="dim")
    table.add_column("Content-Range")
    table.add_column("Size", justify="right")
    for chunk in chunks:
        table.add_row(str(chunk.index), chunk.content_range(size), str(chunk.size))
    console.print(table)


@app.command()
def version():
    """Show version information."""
    from mediaferry import __version__

    console.print(f"mediaferry version {__version__}")


if __name__ == "__main__":
    app()
