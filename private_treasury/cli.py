"""
Command-Line Interface for the Private Treasury withdrawal pipeline.

Each command is a single run-to-completion attempt; nothing is retried or
cached between invocations.
"""

import sys
from pathlib import Path

import click
import trio

from private_treasury import __version__
from private_treasury.logging_utils import configure_logging
from private_treasury.pipeline import build_pipeline, build_reader, take_snapshot
from private_treasury.withdrawal.config import load_settings
from private_treasury.withdrawal.exceptions import TreasuryError
from private_treasury.withdrawal.ownership import find_owned, policy_from_spec


def _fail(message: str) -> None:
    click.echo(click.style(f"✗ {message}", fg="red"), err=True)
    sys.exit(1)


def _parse_policy(ctx, param, value):
    if value is None:
        return None
    try:
        return policy_from_spec(value)
    except ValueError as e:
        raise click.BadParameter(str(e))


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="YAML settings file (default: $TREASURY_CONFIG)",
)
@click.option("-v", "--verbose", count=True, help="Increase log verbosity (-vv for transport logs)")
@click.pass_context
def main(ctx, config_path, verbose):
    """
    Private Treasury withdrawal tool.

    Secrets are read from MANAGER_ETH_PRIVKEY and TREASURY_PRIVKEY only.
    """
    configure_logging(verbose)
    try:
        ctx.obj = load_settings(config_path)
    except TreasuryError as e:
        _fail(str(e))


@main.command()
@click.option(
    "--policy",
    callback=_parse_policy,
    default=None,
    help="Owned-deposit selection: first, largest, nth:N or index:I",
)
@click.option("--dry-run", is_flag=True, help="Stop after local verification")
@click.option(
    "--bundle-out",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write the verified proof bundle (CBOR) here before submitting",
)
@click.pass_obj
def withdraw(settings, policy, dry_run, bundle_out):
    """
    Prove and submit a withdrawal of one owned deposit.

    Examples:

        # Full run with the default policy
        private-treasury withdraw

        # Prove and verify only, keep the bundle
        private-treasury withdraw --dry-run --bundle-out proof.cbor
    """

    def _save_bundle(verified):
        Path(bundle_out).write_bytes(verified.bundle.serialize())

    on_verified = _save_bundle if bundle_out else None
    try:
        pipeline = build_pipeline(settings, policy=policy, submit=not dry_run)
        outcome = trio.run(
            lambda: pipeline.run(dry_run=dry_run, on_verified=on_verified)
        )
    except TreasuryError as e:
        _fail(str(e))
    except OSError as e:
        if not bundle_out:
            raise
        _fail(f"cannot write proof bundle to {bundle_out}: {e}")

    click.echo(click.style("✓ Proof verified locally", fg="green"))
    click.echo(f"  Leaf index: {outcome.leaf_index}")
    click.echo(f"  Root:       {outcome.root}")

    if bundle_out:
        click.echo(f"  Bundle:     {bundle_out}")

    if outcome.submitted:
        receipt = outcome.receipt
        click.echo(click.style("✓ Withdrawal confirmed", fg="green"))
        click.echo(f"  Tx hash:    {receipt.tx_hash}")
        click.echo(f"  Block:      {receipt.block_number}")
        click.echo(f"  Gas used:   {receipt.gas_used}")
    else:
        click.echo(click.style("⚠️  Dry run: nothing submitted", fg="yellow"))


@main.command()
@click.pass_obj
def scan(settings):
    """List deposits the withdrawal secret can open."""

    async def _scan():
        reader, _, _ = build_reader(settings)
        history, _ = await trio.to_thread.run_sync(reader.fetch_history)
        return history, find_owned(history, secret)

    try:
        secret = settings.require_withdraw_secret()
        history, owned = trio.run(_scan)
    except TreasuryError as e:
        _fail(str(e))

    click.echo(f"Deposits on ledger: {len(history)}")
    if not owned:
        click.echo(click.style("No owned deposits", fg="yellow"))
        return
    click.echo(click.style(f"✓ {len(owned)} owned deposit(s)", fg="green"))
    for index in owned:
        click.echo(f"  [{index}] v={history[index].v}")


@main.command("check-root")
@click.pass_obj
def check_root(settings):
    """Rebuild the accumulator from history and compare with the ledger root."""

    async def _check():
        reader, hasher, _ = build_reader(settings)
        return await take_snapshot(
            reader,
            settings.tree,
            hasher,
            hasher,
            validate_parameters=settings.validate_parameters,
        )

    try:
        snapshot = trio.run(_check)
    except TreasuryError as e:
        _fail(str(e))

    click.echo(click.style("✓ Root matches ledger", fg="green"))
    click.echo(f"  Leaves: {len(snapshot.tree)}")
    click.echo(f"  Root:   {snapshot.ledger_root}")


if __name__ == "__main__":
    main()
