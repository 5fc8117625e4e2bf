"""
Command-line interface for VP Verifier.

Usage:
    vp-verify verify presentation.json --challenge abc --revocation-list URL
    vp-verify derive credential.json --hide gpa --hide university
    vp-verify hash credential.json
    vp-verify pointers name gpa
    cat presentation.json | vp-verify verify -
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, NoReturn

import click
import httpx
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from vp_verifier.disclosure import SelectiveDisclosureDeriver
from vp_verifier.errors import VerificationError
from vp_verifier.integrity import check_integrity, hash_document
from vp_verifier.loader import DocumentLoader
from vp_verifier.pipeline import CHECK_NAMES, VerificationOptions, VerificationPipeline
from vp_verifier.revocation import IssuerDirectory, RevocationLookup, RevocationRegistry
from vp_verifier.revocation_list import RevocationListClient
from vp_verifier.settings import VerifierSettings, configure_logging
from vp_verifier.signing import EcdsaJcsSuite
from vp_verifier.verifier import PresentationVerifier, VerificationRecord

console = Console()


def format_record(record: VerificationRecord) -> None:
    """Print a verification record."""
    result = record.result
    if result.verified:
        status = "[bold green]VALID[/]"
        panel_style = "green"
    elif result.revoked:
        status = "[bold red]REVOKED[/]"
        panel_style = "red"
    else:
        status = "[bold red]INVALID[/]"
        panel_style = "red"

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="dim")
    table.add_column("Value")

    table.add_row("Status", status)
    if result.presentation_id:
        table.add_row("Presentation ID", result.presentation_id)
    for name in CHECK_NAMES:
        passed = result.checks.get(name)
        table.add_row(name.capitalize(), "[green]Passed[/]" if passed else "[red]Failed[/]")
    if record.failure_reason:
        table.add_row("Failure Reason", record.failure_reason)

    analysis = record.analysis
    if analysis.revealed_fields:
        table.add_row("Revealed", ", ".join(analysis.revealed_fields))
    if analysis.hidden_fields:
        table.add_row("Hidden", ", ".join(analysis.hidden_fields))
    table.add_row("Privacy Level", analysis.privacy_level)

    console.print(Panel(table, title="Verification Result", border_style=panel_style))

    if result.errors:
        console.print("\n[bold red]Errors:[/]")
        for error in result.errors:
            console.print(f"  [red]x[/] {error}")

    if result.warnings:
        console.print("\n[bold yellow]Warnings:[/]")
        for warning in result.warnings:
            console.print(f"  [yellow]![/] {warning}")


def load_document(source: str, timeout: float = 30.0, verify_ssl: bool = True) -> Any:
    """Load a JSON document from a file, URL, or stdin.

    Args:
        source: File path, URL, or "-" for stdin.
        timeout: HTTP request timeout in seconds.
        verify_ssl: Whether to verify SSL certificates.

    Returns:
        Parsed JSON.
    """
    if source == "-":
        return json.loads(sys.stdin.read())

    if source.startswith("http://") or source.startswith("https://"):
        with httpx.Client(timeout=timeout, verify=verify_ssl) as client:
            response = client.get(
                source,
                headers={"Accept": "application/vp+ld+json, application/vc+ld+json, application/json"},
            )
            response.raise_for_status()
            return response.json()

    path = Path(source)
    if not path.exists():
        raise click.ClickException(f"File not found: {source}")

    with path.open(encoding="utf-8") as f:
        return json.load(f)


def fail(message: str, json_output: bool = False) -> NoReturn:
    if json_output:
        console.print_json(data={"error": message})
    else:
        console.print(f"[red]Error:[/] {message}")
    sys.exit(2)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.version_option(package_name="vp-verifier")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """Verify W3C Verifiable Presentations and work with selective disclosure."""
    try:
        settings = VerifierSettings.from_env()
    except ValueError as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e
    configure_logging("DEBUG" if verbose else settings.log_level)
    ctx.obj = settings


@main.command()
@click.argument("source", required=True)
@click.option("--challenge", help="Expected proof challenge")
@click.option("--domain", help="Expected proof domain")
@click.option("--holder", help="Expected holder DID")
@click.option(
    "--revoked",
    multiple=True,
    metavar="ID",
    help="Presentation id to treat as revoked (repeatable)",
)
@click.option(
    "--revocation-list",
    metavar="URL",
    help="Published revocation list used for credential lookups",
)
@click.option(
    "--did-document",
    "did_documents",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Local DID document used to resolve keys (repeatable)",
)
@click.option("--json-output", is_flag=True, help="Output result as JSON")
@click.option("--timeout", type=float, help="HTTP request timeout in seconds")
@click.option("--no-ssl-verify", is_flag=True, help="Disable SSL certificate verification")
@click.pass_obj
def verify(
    settings: VerifierSettings,
    source: str,
    challenge: str | None,
    domain: str | None,
    holder: str | None,
    revoked: tuple[str, ...],
    revocation_list: str | None,
    did_documents: tuple[str, ...],
    json_output: bool,
    timeout: float | None,
    no_ssl_verify: bool,
) -> None:
    """Verify a Verifiable Presentation.

    SOURCE can be a file path, a URL, or "-" to read from stdin.

    Examples:

        vp-verify verify presentation.json --challenge abc --revocation-list URL

        vp-verify verify presentation.json --did-document holder.json --revoked urn:uuid:1234

    Without --revocation-list no credential revocation status can be
    determined and the presentation fails verification.
    """
    timeout = timeout if timeout is not None else settings.http_timeout
    verify_ssl = settings.verify_ssl and not no_ssl_verify

    try:
        presentation = load_document(source, timeout, verify_ssl)

        loader = DocumentLoader(timeout=timeout, verify_ssl=verify_ssl)
        for path in did_documents:
            loader.add_did_document(load_document(path))

        registry = RevocationRegistry(authority="cli")
        for subject_id in dict.fromkeys(revoked):
            registry.revoke(subject_id, reason="revoked on command line")

        # Without a published list no credential status can be determined.
        lookup: RevocationLookup = IssuerDirectory()
        if revocation_list:
            lookup = RevocationListClient(
                revocation_list, timeout=timeout, verify_ssl=verify_ssl
            )

        pipeline = VerificationPipeline.from_settings(
            settings, registry, suite=EcdsaJcsSuite(loader)
        )
        verifier = PresentationVerifier(pipeline, lookup)
        record = verifier.verify(
            presentation,
            VerificationOptions(
                expected_challenge=challenge,
                expected_domain=domain,
                expected_holder=holder,
            ),
        )
    except json.JSONDecodeError as e:
        fail(f"Invalid JSON: {e}", json_output)
    except httpx.HTTPError as e:
        fail(f"HTTP error: {e}", json_output)
    except (VerificationError, KeyError, OSError) as e:
        fail(str(e), json_output)

    if json_output:
        console.print_json(data=record.to_dict())
    else:
        format_record(record)

    sys.exit(0 if record.verified else 1)


@main.command()
@click.argument("source", required=True)
@click.option(
    "--hide",
    "hide_fields",
    multiple=True,
    required=True,
    metavar="NAME",
    help="Claim name to hide (repeatable)",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, writable=True),
    help="Write the derived credential to a file instead of stdout",
)
def derive(source: str, hide_fields: tuple[str, ...], output: str | None) -> None:
    """Derive a credential with claims hidden."""
    try:
        credential = load_document(source)
        derived = SelectiveDisclosureDeriver().derive(credential, hide_fields)
    except json.JSONDecodeError as e:
        fail(f"Invalid JSON: {e}")
    except httpx.HTTPError as e:
        fail(f"HTTP error: {e}")
    except VerificationError as e:
        fail(str(e))

    if output:
        Path(output).write_text(json.dumps(derived.to_dict(), indent=2), encoding="utf-8")
        console.print(
            f"Derived {derived.id} hiding {', '.join(derived.hidden_fields) or 'nothing'}"
        )
    else:
        console.print_json(data=derived.to_dict())


@main.command("hash")
@click.argument("source", required=True)
@click.option("--json-output", is_flag=True, help="Output result as JSON")
def hash_command(source: str, json_output: bool) -> None:
    """Compute a document's integrity hash and compare it with the embedded one."""
    try:
        document = load_document(source)
    except json.JSONDecodeError as e:
        fail(f"Invalid JSON: {e}", json_output)
    except httpx.HTTPError as e:
        fail(f"HTTP error: {e}", json_output)

    if not isinstance(document, dict):
        fail("Document must be a JSON object", json_output)

    check = check_integrity(document)
    actual = check.actual_hash or hash_document(document)

    if json_output:
        console.print_json(data={
            "hash": actual,
            "embeddedHash": check.expected_hash,
            "valid": check.valid,
        })
    else:
        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_column("Field", style="dim")
        table.add_column("Value")
        table.add_row("Hash", actual)
        table.add_row("Embedded Hash", check.expected_hash or "[dim]none[/]")
        table.add_row("Integrity", "[green]Valid[/]" if check.valid else "[red]Mismatch[/]")
        console.print(table)

    sys.exit(0 if check.valid else 1)


@main.command()
@click.argument("names", nargs=-1, required=True)
def pointers(names: tuple[str, ...]) -> None:
    """Show the credentialSubject pointers for claim names."""
    for pointer in SelectiveDisclosureDeriver().generate_pointers(names):
        console.print(pointer)


if __name__ == "__main__":
    main()
