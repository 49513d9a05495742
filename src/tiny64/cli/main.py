"""
Tiny64 CLI

Command-line interface for generating and inspecting Tiny64 identifiers.
Identifiers go to stdout, one per line; logs and errors go to stderr.

Usage:
    tiny64                              # one identifier
    tiny64 generate --count 5
    tiny64 generate --lock-path /tmp/tiny64.lock
    tiny64 decode Obrl8O3--Cw --json
    tiny64 info
"""

import json
from pathlib import Path
from typing import NoReturn, Optional

import typer
from pydantic import ValidationError
from typing_extensions import Annotated

from tiny64.kernel.config import Tiny64Config
from tiny64.kernel.errors import DecodeError, Tiny64Error
from tiny64.kernel.layout import BitLayout
from tiny64.kernel.logging import configure_logging, get_logger
from tiny64.kernel.metrics import start_metrics_server
from tiny64.tiny64 import Tiny64, decode_id

logger = get_logger(__name__)

app = typer.Typer(
    name="tiny64",
    help="Tiny64 - Time-ordered compact unique IDs",
    add_completion=False,
)

FORMAT_DESCRIPTION = """\
Tiny64 - Time-Ordered Compact Unique IDs

Tiny64 is a compact 64-bit identifier format for systems that need
time-sortable unique IDs with low collision probability.

FEATURES:
    - Short: only 11 characters (URL-safe Base64 alphabet)
    - Time-sortable: IDs sort chronologically as plain strings
    - Low collision rate: timestamp + sequence + randomness
    - Multi-process safe: optional shared lock and sequence state

FORMAT:
    [ 42 bits: timestamp (ms since Unix epoch) ]
    [ 12 bits: sequence number                ]
    [ 10 bits: randomness                     ]

ALPHABET (ASCII order):
    -0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz
"""


def _fail(message: str) -> NoReturn:
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(1)


def _build(
    lock_path: Optional[Path],
    lock_backend: Optional[str],
    lock_timeout: Optional[float],
    machine_id: Optional[int],
    machine_id_bits: Optional[int],
) -> Tiny64:
    try:
        config = Tiny64Config.from_env(
            lock_path=lock_path,
            lock_backend=lock_backend,
            lock_timeout=lock_timeout,
            machine_id=machine_id,
            machine_id_bits=machine_id_bits,
        )
    except ValidationError as e:
        _fail(f"Invalid configuration: {e.errors()[0]['msg']}")
    return Tiny64(config)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    log_level: Annotated[
        str,
        typer.Option("--log-level", help="Logging level"),
    ] = "WARNING",
    json_logs: Annotated[
        bool,
        typer.Option("--json-logs", help="Emit logs as JSON"),
    ] = False,
    metrics_port: Annotated[
        Optional[int],
        typer.Option("--metrics-port", help="Expose Prometheus metrics on this port"),
    ] = None,
) -> None:
    """Generate a single identifier when no command is given"""
    configure_logging(json_output=json_logs, log_level=log_level)

    if metrics_port is not None:
        logger.info("Starting Prometheus metrics server", port=metrics_port)
        start_metrics_server(port=metrics_port)

    if ctx.invoked_subcommand is None:
        try:
            typer.echo(Tiny64.from_env().generate())
        except (Tiny64Error, ValidationError) as e:
            _fail(str(e))


@app.command()
def generate(
    count: Annotated[
        int,
        typer.Option("--count", "-n", min=1, help="Number of identifiers"),
    ] = 1,
    lock_path: Annotated[
        Optional[Path],
        typer.Option("--lock-path", help="Cross-process lock path"),
    ] = None,
    lock_backend: Annotated[
        Optional[str],
        typer.Option("--lock-backend", help="Lock primitive: directory or file"),
    ] = None,
    lock_timeout: Annotated[
        Optional[float],
        typer.Option("--lock-timeout", help="Seconds to wait for the lock"),
    ] = None,
    timeout: Annotated[
        Optional[float],
        typer.Option("--timeout", help="Seconds each identifier may block"),
    ] = None,
    machine_id: Annotated[
        Optional[int],
        typer.Option("--machine-id", help="Machine id stored in reserved bits"),
    ] = None,
    machine_id_bits: Annotated[
        Optional[int],
        typer.Option("--machine-id-bits", help="Random bits reserved for the machine id"),
    ] = None,
    as_int: Annotated[
        bool,
        typer.Option("--int", help="Print the 64-bit integer instead of text"),
    ] = False,
) -> None:
    """Generate identifiers, one per line"""
    ids = _build(lock_path, lock_backend, lock_timeout, machine_id, machine_id_bits)

    try:
        for _ in range(count):
            if as_int:
                typer.echo(ids.generate_int(timeout))
            else:
                typer.echo(ids.generate(timeout))
    except Tiny64Error as e:
        _fail(str(e))


@app.command()
def decode(
    token: Annotated[str, typer.Argument(help="Identifier to decode")],
    machine_id_bits: Annotated[
        int,
        typer.Option("--machine-id-bits", min=0, max=10, help="Reserved machine id bits"),
    ] = 0,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print fields as JSON"),
    ] = False,
) -> None:
    """Decode an identifier into timestamp, sequence and random fields"""
    try:
        fields = decode_id(token, BitLayout(machine_id_bits=machine_id_bits))
    except DecodeError as e:
        _fail(str(e))

    if as_json:
        data = fields.model_dump(exclude_none=True)
        data["timestamp"] = fields.timestamp.isoformat()
        typer.echo(json.dumps(data))
        return

    typer.echo(f"Token:        {token}")
    typer.echo(f"Value:        {fields.value}")
    typer.echo(f"Timestamp:    {fields.timestamp.isoformat()} ({fields.timestamp_ms} ms)")
    typer.echo(f"Sequence:     {fields.sequence}")
    if fields.machine_id is not None:
        typer.echo(f"Machine ID:   {fields.machine_id}")
    typer.echo(f"Random:       {fields.random}")


@app.command()
def info() -> None:
    """Describe the identifier format"""
    typer.echo(FORMAT_DESCRIPTION)


if __name__ == "__main__":
    app()
