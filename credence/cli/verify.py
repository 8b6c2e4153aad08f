"""
credence/cli/verify.py

credence verify — Settlement Registry Verification CLI

Usage:
    credence verify <registry>                  Human output (default)
    credence verify <registry> --format json    Machine-readable JSON
    credence verify <registry> --quiet          Exit code only

Exit codes:
    0  Registry fully valid  (schema + chain + signatures + content + amounts)
    1  Registry has violations
    2  Error  (file missing, malformed JSON, not a registry entry)
"""

import json
import logging
import sys
from pathlib import Path

import click

from credence.core.log import configure_logging
from credence.ledger.audit import AuditReport, audit_entries, load_entries


@click.command(name="verify")
@click.argument("registry", type=click.Path(exists=False))
@click.option(
    "--format", "fmt",
    type=click.Choice(["human", "json"], case_sensitive=False),
    default="human",
    show_default=True,
    help="Output format: human (default) or json (CI/automation).",
)
@click.option(
    "--quiet",
    is_flag=True,
    default=False,
    help="Suppress all output. Use exit code only (0=valid, 1=invalid, 2=error).",
)
def verify_command(registry: str, fmt: str, quiet: bool) -> None:
    """
    Verify a settlement registry — chain, signatures, record hashes, amounts.

    REGISTRY is the path to a registry.jsonl file.

    \b
    Examples:
      credence verify .credence/registry/registry.jsonl
      credence verify registry.jsonl --format json
      credence verify registry.jsonl --quiet && echo "clean"
    """
    configure_logging(logging.WARNING)
    path = Path(registry)

    try:
        entries = load_entries(path)
    except (FileNotFoundError, ValueError) as e:
        _emit_error(str(e), fmt, quiet)
        sys.exit(2)

    report = audit_entries(entries)

    if quiet:
        sys.exit(0 if report.valid else 1)

    if fmt == "json":
        out = report.to_dict()
        out["registry"] = str(path)
        click.echo(json.dumps({"credence_verify": out}, indent=2))
    else:
        _output_human(report, path)

    sys.exit(0 if report.valid else 1)


def _row(ok: bool, label: str, value: str) -> str:
    mark = "✅" if ok else "❌"
    return f"  {label:<16}  {mark}  {value}"


def _output_human(report: AuditReport, path: Path) -> None:
    bar = "─" * 68
    total = report.total_entries

    click.echo()
    click.echo(f"  {'═' * 68}")
    click.echo("  Credence  ·  Settlement Registry Verification")
    click.echo(f"  {'═' * 68}")
    click.echo()
    click.echo(f"  {'Registry':<16}     {path}  ({total:,} entries)")
    if report.kind_counts:
        counts = "  ".join(f"{k}: {v:,}" for k, v in sorted(report.kind_counts.items()))
        click.echo(f"  {'Record kinds':<16}     {counts}")
    click.echo()

    checks = [
        ("Schema",     "schema",             "all entries conform"),
        ("Sequence",   "sequence_gap",       "no gaps"),
        ("Chain",      "chain_break",        "intact — all causal hashes valid"),
        ("Signatures", "invalid_signature",  f"{report.valid_signatures:,} / {total:,} valid"),
        ("Records",    "record_hash",        "every record hash re-derives"),
        ("References", "dangling_reference", "every challenge and settlement resolves"),
        ("Amounts",    "conservation",       "no settlement creates value"),
    ]
    for label, violation_type, ok_text in checks:
        found = report.of_type(violation_type)
        if found:
            click.echo(_row(False, label, f"{len(found)} violation(s)"))
        else:
            click.echo(_row(True, label, ok_text))

    if report.head_hash and total:
        click.echo()
        click.echo(f"  {'Chain Head':<16}     {report.head_hash[:16]}...{report.head_hash[-8:]}")
    click.echo()

    if report.violations:
        click.echo(f"  {bar}")
        for v in report.violations:
            click.echo(f"  {v.at_sequence:>6}  {v.violation_type:<20}  {v.detail}")
        click.echo(f"  {bar}")
        click.echo()

    click.echo(f"  {bar}")
    if report.valid:
        click.echo("  ✅  VALID  ·  0 violations  ·  registry integrity confirmed")
    else:
        click.echo(
            f"  ❌  INVALID  ·  {len(report.violations)} violation(s)  ·  registry integrity compromised"
        )
    click.echo(f"  {bar}")
    click.echo()


def _emit_error(message: str, fmt: str, quiet: bool) -> None:
    if quiet:
        return
    if fmt == "json":
        click.echo(json.dumps({"credence_verify": {"error": message}}, indent=2))
    else:
        click.echo(f"\n  ❌  Error: {message}\n", err=True)
