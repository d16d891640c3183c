"""
replay.cli
AUTHOR: carter-vin

spool-replay: forward spooled span batches to an OTLP collector

Key contract:
- `spool-replay import PATH...` replays folders and files over OTLP/gRPC
- `spool-replay stats PATH...` decodes without uploading
- failures are logged per path and the run continues; exit code 1 if any failed
"""

from __future__ import annotations

import json
import os
import stat
from pathlib import Path

import typer

from replay.reader import ReplayReport, list_segment_files, replay_file, replay_folder, scan_file
from replay.uploader import DEFAULT_ENDPOINT, GrpcTraceUploader
from spool.config import SPOOL_VERSION
from spool.logging import emit_event, emit_failure

app = typer.Typer(
    add_completion=False,
    help="spool-replay: replay spooled span batches",
)


def _path_kind(path: Path) -> str:
    """
    "folder" | "file" | "other" without following symlinks
    """
    mode = os.lstat(path).st_mode
    if stat.S_ISDIR(mode):
        return "folder"
    if stat.S_ISREG(mode):
        return "file"
    return "other"


@app.command("import")
def import_paths(
    paths: list[str] = typer.Argument(..., help="Spool folders or segment files."),
    endpoint: str = typer.Option(
        DEFAULT_ENDPOINT,
        "--endpoint",
        help="Target OTLP gRPC endpoint.",
    ),
    insecure: bool = typer.Option(
        False,
        "--insecure",
        help="Allow clear-text connection.",
    ),
    chronological: bool = typer.Option(
        True,
        "--chronological/--listing-order",
        help="Replay folder files by decoded serial instead of directory listing order.",
    ),
) -> None:
    """
    Upload spooled batches from folders and files
    """
    if not endpoint:
        raise typer.BadParameter("missing required parameter: endpoint")

    uploader = GrpcTraceUploader(endpoint, insecure=insecure)
    failed = 0
    total = ReplayReport()

    try:
        for target in paths:
            path = Path(target)
            try:
                kind = _path_kind(path)
            except OSError as e:
                failed += 1
                emit_failure(
                    "replay_failed",
                    e,
                    spool_version=SPOOL_VERSION,
                    path=target,
                    message=f"cannot read meta of target path: {e}",
                )
                continue

            if kind == "other":
                emit_event("replay_path_skipped", spool_version=SPOOL_VERSION, path=target)
                continue

            emit_event("replay_started", spool_version=SPOOL_VERSION, path=target, kind=kind)
            try:
                if kind == "folder":
                    report = replay_folder(path, uploader, chronological=chronological)
                else:
                    report = replay_file(path, uploader)
            except Exception as e:
                # Keep going; one bad file should not hide the rest
                failed += 1
                emit_failure("replay_failed", e, spool_version=SPOOL_VERSION, path=target)
                continue

            total.add(report)
            emit_event("replay_completed", spool_version=SPOOL_VERSION, path=target, **report.to_dict())
    finally:
        uploader.close()

    typer.echo(f"files={total.files} batches={total.batches} records={total.records} failed={failed}")

    if failed:
        raise typer.Exit(code=1)


@app.command("stats")
def stats(
    paths: list[str] = typer.Argument(..., help="Spool folders or segment files."),
    output_format: str = typer.Option(
        "text",
        "--format",
        help="Output format: text or json.",
    ),
) -> None:
    """
    Print per-file batch and record counts without uploading
    """
    if output_format not in {"text", "json"}:
        raise typer.BadParameter("--format must be 'text' or 'json'")

    rows: list[dict] = []
    for target in paths:
        path = Path(target)
        if path.is_dir():
            files = list_segment_files(path, chronological=True)
        else:
            files = [path]

        for file_path in files:
            row: dict = {"path": str(file_path)}
            try:
                row.update(scan_file(file_path).to_dict())
            except Exception as e:
                row["error"] = f"{type(e).__name__}: {e}"
            rows.append(row)

    if output_format == "json":
        typer.echo(json.dumps({"files": rows}, sort_keys=True, separators=(",", ":"), ensure_ascii=False))
    else:
        for row in rows:
            if "error" in row:
                typer.echo(f"{row['path']}\terror={row['error']}")
            else:
                typer.echo(f"{row['path']}\tbatches={row['batches']}\trecords={row['records']}")

    if any("error" in row for row in rows):
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
