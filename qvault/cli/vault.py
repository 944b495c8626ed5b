#!/usr/bin/env python3
"""
QVault CLI

Command-line interface for driving a multisig vault whose state lives in a
JSON snapshot file. The bundled asset is an in-memory ledger, so `mint` acts
as a faucet for local experiments.

Usage:
    qvault init <config.toml> [--state FILE] [--force]
    qvault mint <address> <amount>
    qvault deposit <caller> <amount> [--approve]
    qvault propose transfer <caller> <to> <amount>
    qvault propose add-signer <caller> <signer>
    qvault propose remove-signer <caller> <signer>
    qvault approve <caller> <proposal_id>
    qvault execute <proposal_id> [--caller NAME]
    qvault status
    qvault show <proposal_id>
    qvault events [--json]
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

import click

from qvault import __version__
from qvault.assets import AssetError, InMemoryAsset
from qvault.config import VaultConfig, load_config
from qvault.constants import QVAULT_STATE_FILE, STATE_FILE_VERSION
from qvault.custody import MultisigVault
from qvault.exceptions import ConfigurationError, StateFileError, VaultError
from qvault.logger import configure_logging


# ── State file ────────────────────────────────────────────────────────

def load_state(state_path: Path):
    """Read the snapshot file and rebuild (config, asset, vault)."""
    if not state_path.exists():
        raise StateFileError(
            f"State file not found: {state_path}. Run 'qvault init' first."
        )
    try:
        with open(state_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise StateFileError(f"State file {state_path} is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise StateFileError(f"State file {state_path} must hold a JSON object")
    if data.get("version") != STATE_FILE_VERSION:
        raise StateFileError(f"Unsupported state file version: {data.get('version')!r}")

    try:
        config = VaultConfig.from_dict(data["config"])
        asset = InMemoryAsset.from_dict(data["asset"])
        vault = MultisigVault.from_dict(data["vault"], asset)
    except StateFileError:
        raise
    except (KeyError, TypeError, ValueError, AttributeError, AssetError, VaultError) as e:
        raise StateFileError(
            f"State file {state_path} is malformed: {type(e).__name__}: {e}"
        ) from e
    return config, asset, vault


def save_state(state_path: Path, config: VaultConfig, asset: InMemoryAsset, vault: MultisigVault) -> None:
    data: Dict[str, Any] = {
        "version": STATE_FILE_VERSION,
        "config": config.to_dict(),
        "asset": asset.to_dict(),
        "vault": vault.to_dict(),
    }
    tmp_path = state_path.with_suffix(state_path.suffix + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, sort_keys=True)
    os.replace(tmp_path, state_path)


class VaultSession:
    """Loads the state file on entry and saves it only if the body succeeded."""

    def __init__(self, state_path: Path, save: bool = True):
        self.state_path = state_path
        self.save = save

    def __enter__(self):
        try:
            self.config, self.asset, self.vault = load_state(self.state_path)
        except VaultError as e:
            raise click.ClickException(str(e))
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None and self.save:
            save_state(self.state_path, self.config, self.asset, self.vault)
            return False
        if exc_type is not None and issubclass(exc_type, VaultError):
            raise click.ClickException(f"{exc_type.__name__}: {exc}")
        return False


def format_proposal(proposal) -> str:
    action = proposal.action
    if action.kind.name == "TRANSFER":
        detail = f"to={action.to} amount={action.amount}"
    else:
        detail = f"signer={action.membership_target}"
    status = "executed" if proposal.executed else "pending"
    return (
        f"#{proposal.id:<4} {action.kind.name:<14} {detail:<40} "
        f"approvals={proposal.approvals} [{status}]"
    )


# ── Commands ──────────────────────────────────────────────────────────

@click.group()
@click.version_option(version=__version__, prog_name="qvault")
@click.option(
    "--state", "-s",
    "state_file",
    type=click.Path(dir_okay=False),
    default=str(QVAULT_STATE_FILE),
    show_default=True,
    help="Vault state file",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Override the configured log level",
)
@click.pass_context
def cli(ctx: click.Context, state_file: str, log_level: Optional[str]):
    """QVault Command Line Interface

    Quorum-gated custody: signers propose, approve and execute transfers
    and membership changes.
    """
    ctx.ensure_object(dict)
    ctx.obj["state_path"] = Path(state_file)
    ctx.obj["log_level"] = log_level
    if log_level:
        configure_logging(log_level=log_level.upper())


@cli.command("init")
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--force", is_flag=True, help="Overwrite an existing state file")
@click.pass_context
def init_cmd(ctx: click.Context, config_file: str, force: bool):
    """Create a new vault from a TOML config.

    Examples:

        qvault init vault.toml

        qvault --state team.json init team.toml --force
    """
    state_path: Path = ctx.obj["state_path"]
    if state_path.exists() and not force:
        raise click.ClickException(
            f"State file {state_path} already exists (use --force to overwrite)"
        )

    try:
        config = load_config(config_file)
    except ConfigurationError as e:
        raise click.ClickException(f"Invalid configuration: {e}")

    if not ctx.obj.get("log_level"):
        configure_logging(
            log_level=config.logging.level,
            log_file=Path(config.logging.file) if config.logging.file else None,
        )

    asset = InMemoryAsset(symbol=config.asset.symbol, holder=config.vault.address)
    try:
        vault = MultisigVault.from_config(config, asset)
    except VaultError as e:
        raise click.ClickException(f"Failed to create vault: {e}")

    save_state(state_path, config, asset, vault)
    click.echo(click.style("✓ Vault created", fg="green"))
    click.echo(f"Address:   {vault.address}")
    click.echo(f"Asset:     {asset.symbol}")
    click.echo(f"Quorum:    {vault.required_approvals}-of-{vault.signer_count}")
    click.echo(f"Signers:   {', '.join(vault.signers)}")
    click.echo(f"Saved to:  {state_path}")


@cli.command("mint")
@click.argument("address")
@click.argument("amount", type=int)
@click.pass_context
def mint_cmd(ctx: click.Context, address: str, amount: int):
    """Mint test units of the asset to ADDRESS."""
    with VaultSession(ctx.obj["state_path"]) as session:
        try:
            session.asset.mint(address, amount)
        except AssetError as e:
            raise click.ClickException(str(e))
        click.echo(f"Minted {amount} {session.asset.symbol} to {address}")
        click.echo(f"Balance: {session.asset.balance_of(address)}")


@cli.command("deposit")
@click.argument("caller")
@click.argument("amount", type=int)
@click.option("--approve", is_flag=True, help="Grant the vault an allowance for AMOUNT first")
@click.pass_context
def deposit_cmd(ctx: click.Context, caller: str, amount: int, approve: bool):
    """Deposit AMOUNT from CALLER into the vault.

    Examples:

        qvault deposit alice 100 --approve
    """
    with VaultSession(ctx.obj["state_path"]) as session:
        if approve and amount > 0:
            current = session.asset.allowance(caller, session.vault.address)
            session.asset.approve(caller, session.vault.address, current + amount)
        balance = session.vault.deposit(caller, amount)
        click.echo(click.style(f"✓ Deposited {amount} {session.asset.symbol}", fg="green"))
        click.echo(f"Vault balance: {balance}")


@cli.group("propose")
def propose_group():
    """Create a proposal (signers only)."""


@propose_group.command("transfer")
@click.argument("caller")
@click.argument("to")
@click.argument("amount", type=int)
@click.pass_context
def propose_transfer_cmd(ctx: click.Context, caller: str, to: str, amount: int):
    """Propose sending AMOUNT to TO."""
    with VaultSession(ctx.obj["state_path"]) as session:
        pid = session.vault.propose_transfer(caller, to, amount)
        click.echo(click.style(f"✓ Proposal #{pid} created", fg="green"))


@propose_group.command("add-signer")
@click.argument("caller")
@click.argument("signer")
@click.pass_context
def propose_add_signer_cmd(ctx: click.Context, caller: str, signer: str):
    """Propose adding SIGNER."""
    with VaultSession(ctx.obj["state_path"]) as session:
        pid = session.vault.propose_add_signer(caller, signer)
        click.echo(click.style(f"✓ Proposal #{pid} created", fg="green"))


@propose_group.command("remove-signer")
@click.argument("caller")
@click.argument("signer")
@click.pass_context
def propose_remove_signer_cmd(ctx: click.Context, caller: str, signer: str):
    """Propose removing SIGNER."""
    with VaultSession(ctx.obj["state_path"]) as session:
        pid = session.vault.propose_remove_signer(caller, signer)
        click.echo(click.style(f"✓ Proposal #{pid} created", fg="green"))


@cli.command("approve")
@click.argument("caller")
@click.argument("proposal_id", type=int)
@click.pass_context
def approve_cmd(ctx: click.Context, caller: str, proposal_id: int):
    """Approve PROPOSAL_ID as CALLER."""
    with VaultSession(ctx.obj["state_path"]) as session:
        recorded = session.vault.approve_proposal(caller, proposal_id)
        proposal = session.vault.get_proposal(proposal_id)
        if recorded:
            click.echo(click.style("✓ Approval recorded", fg="green"))
        else:
            click.echo(click.style("Approval already recorded (ignored)", fg="yellow"))
        click.echo(f"Approvals: {proposal.approvals}/{session.vault.required_approvals}")


@cli.command("execute")
@click.argument("proposal_id", type=int)
@click.option("--caller", default=None, help="Principal submitting the execution")
@click.pass_context
def execute_cmd(ctx: click.Context, proposal_id: int, caller: Optional[str]):
    """Execute a proposal that has reached quorum."""
    with VaultSession(ctx.obj["state_path"]) as session:
        result = session.vault.execute_proposal(caller, proposal_id)
        click.echo(click.style(f"✓ Proposal #{proposal_id} executed", fg="green"))
        if result.transferred:
            click.echo(f"Transferred: {result.transferred} {session.asset.symbol}")
        for signer in result.signers_added:
            click.echo(f"Signer added: {signer}")
        for signer in result.signers_removed:
            click.echo(f"Signer removed: {signer}")
        if result.purged_approvals:
            click.echo(f"Approvals purged from: {result.purged_approvals}")


@cli.command("status")
@click.pass_context
def status_cmd(ctx: click.Context):
    """Display vault membership, balance and proposals."""
    with VaultSession(ctx.obj["state_path"], save=False) as session:
        vault = session.vault
        click.echo()
        click.echo(click.style("═══════════════════════════════════════", fg="cyan"))
        click.echo(click.style("            QVault Status               ", fg="cyan", bold=True))
        click.echo(click.style("═══════════════════════════════════════", fg="cyan"))
        click.echo()
        click.echo(f"Address:   {vault.address}")
        click.echo(f"Balance:   {vault.balance} {session.asset.symbol}")
        click.echo(f"On ledger: {session.asset.balance_of(vault.address)} {session.asset.symbol}")
        click.echo(f"Quorum:    {vault.required_approvals}-of-{vault.signer_count}")
        click.echo(f"Signers:   {', '.join(vault.signers)}")
        click.echo()
        proposals = vault.proposals.all()
        if not proposals:
            click.echo("No proposals.")
            return
        click.echo("Proposals:")
        for proposal in proposals:
            click.echo(f"  {format_proposal(proposal)}")


@cli.command("show")
@click.argument("proposal_id", type=int)
@click.pass_context
def show_cmd(ctx: click.Context, proposal_id: int):
    """Show one proposal as JSON."""
    with VaultSession(ctx.obj["state_path"], save=False) as session:
        proposal = session.vault.get_proposal(proposal_id)
        click.echo(json.dumps(proposal.to_dict(), indent=2))


@cli.command("events")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
@click.pass_context
def events_cmd(ctx: click.Context, as_json: bool):
    """List the audit trail."""
    with VaultSession(ctx.obj["state_path"], save=False) as session:
        entries = session.vault.events.to_dict()
        if as_json:
            click.echo(json.dumps(entries, indent=2))
            return
        if not entries:
            click.echo("No events.")
            return
        for entry in entries:
            fields = ", ".join(
                f"{k}={v}" for k, v in entry.items()
                if k not in ("event", "seq", "timestamp")
            )
            click.echo(f"{entry['seq']:>4}  {entry['event']:<18} {fields}")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
