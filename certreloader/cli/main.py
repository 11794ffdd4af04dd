"""
CLI tool for certreloader.

Validates certificate/key pairs and runs an example HTTPS server that picks
up rotated key material without restarting.
"""

from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from certreloader import __version__
from certreloader.config import LogLevel, TLSVersion, load_config
from certreloader.exceptions import CertReloaderError, ConfigurationError, FileReadError, SourceKind
from certreloader.keypair import parse_key_pair
from certreloader.loader import read_source
from certreloader.logger import LogConfig, setup_logging
from certreloader.metrics import ReloadMetrics, start_metrics_server
from certreloader.observers import LoggingObserver, MetricsObserver
from certreloader.server import serve as run_server

console = Console()


@click.group()
@click.version_option(version=__version__, prog_name="certreloader")
def cli():
    """certreloader - hot-reloading TLS certificates"""
    pass


@cli.command()
@click.argument("cert_path", type=click.Path(path_type=Path))
@click.argument("key_path", type=click.Path(path_type=Path))
@click.option("--password", envvar="CERTRELOADER_KEY_PASSWORD", help="Private key password")
def check(cert_path: Path, key_path: Path, password: Optional[str]):
    """Validate a certificate/private key pair once."""
    try:
        cert_source = read_source(cert_path, SourceKind.CERTIFICATE)
        key_source = read_source(key_path, SourceKind.PRIVATE_KEY)
        key_pair = parse_key_pair(
            cert_source.data,
            key_source.data,
            password=password.encode() if password else None,
        )
    except FileReadError as e:
        console.print(f"[bold red]{e.kind.value} unreadable:[/bold red] {e.message}")
        raise SystemExit(1)
    except CertReloaderError as e:
        console.print(f"[bold red]invalid key pair:[/bold red] {e.message}")
        raise SystemExit(1)

    table = Table(title=str(cert_path))
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    for field, value in key_pair.describe().items():
        table.add_row(field.replace("_", " "), value)
    table.add_row("chain length", str(len(key_pair.chain)))
    table.add_row("certificate fingerprint", str(cert_source.fingerprint))
    table.add_row("key fingerprint", str(key_source.fingerprint))
    console.print(table)
    console.print("[bold green]Certificate and private key match[/bold green]")


@cli.command()
@click.option("--config", "-c", "config_file", type=click.Path(path_type=Path), help="YAML configuration file")
@click.option("--cert", "cert_path", type=click.Path(path_type=Path), help="Certificate file")
@click.option("--key", "key_path", type=click.Path(path_type=Path), help="Private key file")
@click.option("--interval", type=float, help="Seconds between reload attempts")
@click.option("--host", help="Bind host")
@click.option("--port", type=int, help="Bind port")
@click.option(
    "--min-tls",
    type=click.Choice([v.value for v in TLSVersion]),
    help="Minimum TLS version",
)
@click.option("--metrics-port", type=int, help="Expose Prometheus metrics on this port")
@click.option(
    "--log-level",
    type=click.Choice([level.value for level in LogLevel], case_sensitive=False),
    help="Logging level",
)
@click.option("--log-format", type=click.Choice(["json", "console"]), help="Log format")
@click.option("--shutdown-after", type=float, help="Stop after N seconds (useful for tests)")
def serve(
    config_file: Optional[Path],
    cert_path: Optional[Path],
    key_path: Optional[Path],
    interval: Optional[float],
    host: Optional[str],
    port: Optional[int],
    min_tls: Optional[str],
    metrics_port: Optional[int],
    log_level: Optional[str],
    log_format: Optional[str],
    shutdown_after: Optional[float],
):
    """Run an HTTPS server whose certificate follows the files on disk."""
    overrides = {
        "reloader": _compact(cert_path=cert_path, key_path=key_path, interval_seconds=interval),
        "server": _compact(host=host, port=port, minimum_tls_version=min_tls),
        "observability": _compact(
            log_level=log_level.upper() if log_level else None,
            log_format=log_format,
            metrics_port=metrics_port,
            enable_metrics=True if metrics_port is not None else None,
        ),
    }
    try:
        config = load_config(config_file, **{k: v for k, v in overrides.items() if v})
        setup_logging(LogConfig.from_observability(config.observability))
    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {e.message}")
        raise SystemExit(2)

    observability = config.observability
    observers = [LoggingObserver(config.reloader.cert_path.name, observability.first_error_only)]
    if observability.enable_metrics:
        metrics = ReloadMetrics()
        start_metrics_server(observability.metrics_port)
        observers.append(MetricsObserver(metrics))

    try:
        run_server(config, observers=observers, shutdown_after=shutdown_after)
    except CertReloaderError as e:
        console.print(f"[bold red]Failed to load key pair:[/bold red] {e}")
        raise SystemExit(1)


def _compact(**values) -> dict:
    return {k: v for k, v in values.items() if v is not None}


def main():
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
