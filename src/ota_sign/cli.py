"""Command-line interface for the OTA payload signing tool."""

import base64
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import (
    OtaSignConfig,
    PayloadGenerationConfig,
    PayloadVersion,
    SigningConfig,
    load_config,
    save_config,
)
from .errors import ConfigError, OtaSignError
from .keys import RsaKey
from .orchestrator import SigningSession
from .payload import PayloadFile, add_signature_to_payload, payload_properties
from .signer import hash_payload_for_signing, signature_blob_length, verify_signed_payload

console = Console()


class _OtaSignGroup(click.Group):
    """Reports signing errors without a traceback."""

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except OtaSignError as e:
            console.print(f"[bold red]✗[/bold red] {escape(str(e))}")
            sys.exit(1)


def _load_config(path: Optional[str]) -> OtaSignConfig:
    if path is None:
        return OtaSignConfig()
    return load_config(Path(path))


@click.group(cls=_OtaSignGroup)
@click.version_option(version=__version__, prog_name="ota-sign")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """OTA Update Payload Signing Tool.

    Reserve, sign and verify RSA-2048 signatures in update payloads.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


@main.command("blob-length")
@click.option("--key", "-k", "keys", type=click.Path(exists=True), multiple=True, required=True, help="Private key file (repeatable)")
def blob_length(keys: tuple[str, ...]) -> None:
    """Print the signature blob size for a list of keys."""
    console.print(str(signature_blob_length(list(keys))))


@main.command()
@click.option("--data", "-d", type=click.Path(exists=True), required=True, help="Data blobs file")
@click.option("--output", "-o", type=click.Path(), required=True, help="Output payload path")
@click.option("--key", "-k", "keys", type=click.Path(exists=True), multiple=True, help="Private key file (repeatable)")
@click.option("--signature-size", "-s", type=int, default=0, help="Bytes to reserve per signature region when no key is given")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="Configuration file")
def write(
    data: str,
    output: str,
    keys: tuple[str, ...],
    signature_size: int,
    config_path: Optional[str],
) -> None:
    """Write a payload, unsigned with reserved space or signed."""
    config = _load_config(config_path)

    payload = PayloadFile()
    payload.init(config.generation)
    metadata_size = payload.write_payload(
        output, data, list(keys), signature_blob_length=signature_size
    )

    state = "Signed" if keys else "Unsigned"
    console.print(f"[bold green]✓[/bold green] {state} payload saved to {output}")
    console.print(f"Metadata size: {metadata_size}")


@main.command("hash")
@click.option("--payload", "-p", type=click.Path(exists=True), required=True, help="Payload with reserved signatures")
@click.option("--signature-size", "-s", "sizes", type=int, multiple=True, required=True, help="Size of each signature (repeatable)")
@click.option("--out-payload-hash", type=click.Path(), help="Write raw payload hash to file")
@click.option("--out-metadata-hash", type=click.Path(), help="Write raw metadata hash to file")
def hash_command(
    payload: str,
    sizes: tuple[int, ...],
    out_payload_hash: Optional[str],
    out_metadata_hash: Optional[str],
) -> None:
    """Compute the hashes to sign for a payload."""
    hashes = hash_payload_for_signing(payload, list(sizes))

    if out_payload_hash:
        Path(out_payload_hash).write_bytes(hashes.payload_hash)
    if out_metadata_hash:
        Path(out_metadata_hash).write_bytes(hashes.metadata_hash)

    table = Table(title="Payload Hashes")
    table.add_column("Hash", style="cyan")
    table.add_column("SHA-256 (base64)", style="green")
    table.add_row("Payload", base64.b64encode(hashes.payload_hash).decode())
    table.add_row("Metadata", base64.b64encode(hashes.metadata_hash).decode())
    console.print(table)


@main.command("add-signature")
@click.option("--payload", "-p", type=click.Path(exists=True), required=True, help="Payload with reserved signatures")
@click.option("--payload-signature", "payload_signatures", type=click.Path(exists=True), multiple=True, required=True, help="Raw payload signature file (repeatable)")
@click.option("--metadata-signature", "metadata_signatures", type=click.Path(exists=True), multiple=True, required=True, help="Raw metadata signature file (repeatable)")
@click.option("--output", "-o", type=click.Path(), required=True, help="Output signed payload path")
def add_signature(
    payload: str,
    payload_signatures: tuple[str, ...],
    metadata_signatures: tuple[str, ...],
    output: str,
) -> None:
    """Insert externally computed signatures into a payload."""
    metadata_size = add_signature_to_payload(
        payload,
        [Path(p).read_bytes() for p in payload_signatures],
        [Path(p).read_bytes() for p in metadata_signatures],
        output,
    )
    console.print(f"[bold green]✓[/bold green] Signed payload saved to {output}")
    console.print(f"Metadata size: {metadata_size}")


@main.command()
@click.option("--data", "-d", type=click.Path(exists=True), required=True, help="Data blobs file")
@click.option("--output", "-o", type=click.Path(), required=True, help="Output payload path")
@click.option("--key", "-k", "keys", type=click.Path(exists=True), multiple=True, help="Private key file (repeatable)")
@click.option("--public-key", "-P", type=click.Path(exists=True), help="Public key for the self-check")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="Configuration file")
@click.option("--no-verify", is_flag=True, help="Skip the self-check")
@click.pass_context
def sign(
    ctx: click.Context,
    data: str,
    output: str,
    keys: tuple[str, ...],
    public_key: Optional[str],
    config_path: Optional[str],
    no_verify: bool,
) -> None:
    """Generate and sign a payload with the two-pass protocol."""
    verbose: bool = ctx.obj["verbose"]
    config = _load_config(config_path)

    private_keys = list(keys) or config.signing.private_keys
    public_key = public_key or config.signing.public_key
    if not private_keys:
        raise click.UsageError("No signing key given")

    payload = PayloadFile()
    payload.init(config.generation)
    session = SigningSession(payload, output, data, private_keys, public_key)
    do_verify = bool(public_key) and config.signing.verify_after_signing and not no_verify
    result = session.run(verify=do_verify)

    if do_verify and not result.verified:
        console.print(f"[bold red]✗[/bold red] {output} does not verify against {public_key}")
        sys.exit(1)

    console.print(f"[bold green]✓[/bold green] Signed payload saved to {output}")

    if verbose:
        table = Table(title="Signing Details")
        table.add_column("Property", style="cyan")
        table.add_column("Value", style="green")
        table.add_row("State", result.state.value)
        table.add_row("Keys", str(len(private_keys)))
        table.add_row("Metadata Size", f"{result.metadata_size} bytes")
        table.add_row("Signature Blob", f"{result.signature_blob_length} bytes")
        table.add_row("Payload Hash", result.hashes.payload_hash.hex()[:32] + "...")
        table.add_row("Metadata Hash", result.hashes.metadata_hash.hex()[:32] + "...")
        console.print(table)


@main.command()
@click.option("--payload", "-p", type=click.Path(exists=True), required=True, help="Signed payload")
@click.option("--key", "-k", type=click.Path(exists=True), required=True, help="Public key file")
def verify(payload: str, key: str) -> None:
    """Verify a signed payload."""
    if verify_signed_payload(payload, key):
        console.print("[bold green]✓[/bold green] Signature verification successful")
        sys.exit(0)
    else:
        console.print("[bold red]✗[/bold red] Signature verification failed")
        sys.exit(1)


@main.command()
@click.option("--payload", "-p", type=click.Path(exists=True), required=True, help="Payload file")
def properties(payload: str) -> None:
    """Print the payload properties published with an update."""
    for name, value in payload_properties(payload).items():
        click.echo(f"{name}={value}")


@main.command()
@click.option("--key", "-k", type=click.Path(exists=True), required=True, help="Key file")
def keyinfo(key: str) -> None:
    """Display information about a signing key."""
    rsa_key = RsaKey.load(key)

    table = Table()
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Type", "Private + Public" if rsa_key.has_private() else "Public Only")
    table.add_row("Key Size", f"{rsa_key.size_in_bits} bits")
    table.add_row("Signature Size", f"{rsa_key.size_in_bytes} bytes")
    table.add_row("Fingerprint", rsa_key.fingerprint())
    console.print(table)


@main.command("init-config")
@click.option("--output", "-o", type=click.Path(), required=True, help="Output configuration file (.yaml, .yml or .json)")
@click.option("--key", "-k", "keys", type=click.Path(), multiple=True, help="Private key file (repeatable)")
@click.option("--public-key", "-P", type=click.Path(), help="Public key for the self-check")
@click.option("--block-size", type=int, default=4096, help="Payload block size")
@click.option("--minor-version", type=int, default=0, help="Minor payload version")
def init_config(
    output: str,
    keys: tuple[str, ...],
    public_key: Optional[str],
    block_size: int,
    minor_version: int,
) -> None:
    """Write a configuration file for the sign command."""
    try:
        config = OtaSignConfig(
            generation=PayloadGenerationConfig(
                version=PayloadVersion(minor=minor_version),
                block_size=block_size,
            ),
            signing=SigningConfig(private_keys=list(keys), public_key=public_key),
        )
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration:\n{e}") from e

    save_config(config, Path(output))
    console.print(f"[bold green]✓[/bold green] Configuration saved to {output}")


if __name__ == "__main__":
    main()
