#!/usr/bin/env python3
"""
govkit Governance CLI

Drives proposals against a govkit node over JSON-RPC.

Usage:
    govkit node [--host HOST] [--port PORT]
    govkit deployment
    govkit propose [--function NAME] [--arg VALUE ...] [--description TEXT]
    govkit vote [--proposal-id ID] [--support for|against|abstain] [--reason TEXT]
    govkit queue-execute [--function NAME] [--arg VALUE ...] [--description TEXT]
    govkit run [--function NAME] [--arg VALUE ...] [--description TEXT]
    govkit state [--proposal-id ID]

Without --proposal-id, the proposal is looked up in the proposal file by the
description of the configured action.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Tuple

import click

from ..config.loader import GovKitConfig, load_config
from ..constants import DEV_ACCOUNTS
from ..exceptions import GovKitException
from ..governance.deploy import Deployment
from ..governance.proposals import ProposalState, VoteType
from ..governance.targets import Box
from ..logger import get_logger
from ..client.contracts import ContractHandle
from ..client.orchestrator import (
    Ballot,
    DevelopmentTimeTravel,
    Orchestrator,
    OrchestratorSettings,
    ProposalReport,
    ProposalRequest,
    StepReport,
    with_retries,
)
from ..client.provider import HttpLedgerClient
from ..client.store import JsonFileProposalStore

logger = get_logger(__name__)

SUPPORT_CHOICES = {
    "against": VoteType.AGAINST,
    "for": VoteType.FOR,
    "abstain": VoteType.ABSTAIN,
}


def state_style(state: Optional[ProposalState]) -> str:
    """Colour a proposal state for display."""
    if state is None:
        return click.style("Unknown", fg="red")
    colour = {
        ProposalState.EXECUTED: "green",
        ProposalState.SUCCEEDED: "green",
        ProposalState.QUEUED: "cyan",
        ProposalState.ACTIVE: "yellow",
        ProposalState.PENDING: "yellow",
    }.get(state, "red")
    return click.style(state.label, fg=colour, bold=True)


def print_step(report: StepReport) -> None:
    marker = click.style("skipped", fg="yellow") if report.skipped else click.style("done", fg="green")
    click.echo(f"{report.step:<8} [{marker}] proposal {report.proposal_id}")
    click.echo(f"         state: {state_style(report.state)}")
    if report.operation_id:
        click.echo(f"         operation: 0x{report.operation_id.hex()}")
    if report.tx_hash:
        click.echo(f"         tx: {report.tx_hash}")


def build_request(cfg: GovKitConfig, deployment: Deployment, function: Optional[str],
                  args: Tuple[int, ...], description: Optional[str]) -> ProposalRequest:
    return ProposalRequest.from_action(
        target=deployment.box,
        contract_cls=Box,
        func=function or cfg.action.function,
        args=list(args) if args else list(cfg.action.args),
        description=description or cfg.action.description,
    )


async def fetch_deployment(client: HttpLedgerClient, settings: OrchestratorSettings) -> Deployment:
    raw = await with_retries("read deployment", lambda: client.request("govkit_deployment"), settings)
    return Deployment.from_dict(raw)


@asynccontextmanager
async def open_orchestrator(cfg: GovKitConfig, account: str) -> AsyncIterator[Orchestrator]:
    """Connect to the node, fetch the deployment and build an Orchestrator."""
    settings = OrchestratorSettings.from_config(cfg.orchestrator)
    async with HttpLedgerClient(cfg.network.rpc_url, timeout=cfg.network.connection_timeout) as client:
        deployment = await fetch_deployment(client, settings)
        time_travel = None
        if cfg.orchestrator.time_travel and cfg.network.is_development:
            time_travel = await with_retries(
                "read network", lambda: DevelopmentTimeTravel.for_client(client), settings
            )
        yield Orchestrator(
            client=client,
            deployment=deployment,
            proposer=account,
            store=JsonFileProposalStore(cfg.orchestrator.proposal_file),
            settings=settings,
            time_travel=time_travel,
        )


def run_async(coro):
    """Run a coroutine, turning govkit errors into click errors."""
    try:
        return asyncio.run(coro)
    except GovKitException as e:
        raise click.ClickException(f"{type(e).__name__}: {e}")


async def resolve_proposal_id(orch: Orchestrator, cfg: GovKitConfig, proposal_id: Optional[str]) -> int:
    if proposal_id is not None:
        return int(proposal_id, 0)
    request = build_request(cfg, orch.deployment, None, (), None)
    chain_id = await orch.retry("read chain id", orch.client.chain_id)
    found = orch.store.lookup(chain_id, request.description_hash)
    if found is None:
        raise click.ClickException(
            f"No proposal recorded for {cfg.action.description!r}; pass --proposal-id"
        )
    return found


@click.group()
@click.version_option(version="0.1.0", prog_name="govkit")
@click.option("--config", "-c", "config_path", type=click.Path(), help="Path to govkit.toml")
@click.option("--rpc-url", help="Node JSON-RPC URL (overrides config)")
@click.option("--account", "-a", default=DEV_ACCOUNTS[0], show_default=True,
              help="Account submitting transactions")
@click.pass_context
def cli(ctx, config_path: Optional[str], rpc_url: Optional[str], account: str):
    """govkit Governance Command Line Interface

    Propose, vote on, queue and execute governance proposals.
    """
    try:
        cfg = load_config(config_path)
    except GovKitException as e:
        raise click.ClickException(str(e))
    if rpc_url:
        cfg.network.rpc_url = rpc_url
    ctx.obj = {"config": cfg, "account": account}


action_options = [
    click.option("--function", "-f", help="Box function to call"),
    click.option("--arg", "args", multiple=True, type=int, help="Function argument (repeatable)"),
    click.option("--description", "-d", help="Proposal description"),
]


def with_action_options(func):
    for option in reversed(action_options):
        func = option(func)
    return func


@cli.command("node")
@click.option("--host", help="Bind address (default from config)")
@click.option("--port", type=int, help="Bind port (default from config)")
@click.pass_context
def node_cmd(ctx, host: Optional[str], port: Optional[int]):
    """Serve a development ledger with the governance system deployed."""
    import uvicorn
    from ..rpc.app import build_dev_node, create_app

    cfg: GovKitConfig = ctx.obj["config"]
    node = build_dev_node(cfg)
    click.echo(click.style("govkit development node", fg="cyan", bold=True))
    for name, address in node.deployment.to_dict().items():
        click.echo(f"  {name:<9} {address}")
    uvicorn.run(create_app(node), host=host or cfg.rpc.host, port=port or cfg.rpc.port)


@cli.command("deployment")
@click.pass_context
def deployment_cmd(ctx):
    """Show the governance contract addresses of the node."""
    cfg: GovKitConfig = ctx.obj["config"]

    async def main():
        settings = OrchestratorSettings.from_config(cfg.orchestrator)
        async with HttpLedgerClient(cfg.network.rpc_url, timeout=cfg.network.connection_timeout) as client:
            return await fetch_deployment(client, settings)

    for name, address in run_async(main()).to_dict().items():
        click.echo(f"{name:<9} {address}")


@cli.command("propose")
@with_action_options
@click.pass_context
def propose_cmd(ctx, function: Optional[str], args: Tuple[int, ...], description: Optional[str]):
    """Submit the configured action as a proposal.

    Examples:

        govkit propose

        govkit propose --arg 77 --description "Proposal #2 - set box to 77"
    """
    cfg: GovKitConfig = ctx.obj["config"]

    async def main() -> StepReport:
        async with open_orchestrator(cfg, ctx.obj["account"]) as orch:
            request = build_request(cfg, orch.deployment, function, args, description)
            return await orch.propose(request)

    print_step(run_async(main()))


@cli.command("vote")
@click.option("--proposal-id", help="Proposal id (decimal or 0x hex)")
@click.option("--support", type=click.Choice(list(SUPPORT_CHOICES)), default="for", show_default=True)
@click.option("--reason", help="Vote reason")
@click.pass_context
def vote_cmd(ctx, proposal_id: Optional[str], support: str, reason: Optional[str]):
    """Cast the account's vote, waiting for the voting window if needed."""
    cfg: GovKitConfig = ctx.obj["config"]
    account = ctx.obj["account"]

    async def main() -> StepReport:
        async with open_orchestrator(cfg, account) as orch:
            pid = await resolve_proposal_id(orch, cfg, proposal_id)
            ballot = Ballot(
                voter=account,
                support=SUPPORT_CHOICES[support],
                reason=reason if reason is not None else cfg.action.vote_reason,
            )
            return await orch.vote(pid, [ballot])

    print_step(run_async(main()))


@cli.command("queue-execute")
@with_action_options
@click.pass_context
def queue_execute_cmd(ctx, function: Optional[str], args: Tuple[int, ...], description: Optional[str]):
    """Queue a succeeded proposal, wait for the timelock, then execute it."""
    cfg: GovKitConfig = ctx.obj["config"]

    async def main():
        async with open_orchestrator(cfg, ctx.obj["account"]) as orch:
            request = build_request(cfg, orch.deployment, function, args, description)
            queued = await orch.queue(request)
            executed = await orch.execute(request)
            box = ContractHandle(orch.client, Box, orch.deployment.box)
            return queued, executed, await orch.retry("read box", lambda: box.call("retrieve"))

    queued, executed, value = run_async(main())
    print_step(queued)
    print_step(executed)
    click.echo(f"Box value: {click.style(str(value), bold=True)}")


@cli.command("run")
@with_action_options
@click.pass_context
def run_cmd(ctx, function: Optional[str], args: Tuple[int, ...], description: Optional[str]):
    """Drive the full lifecycle: propose, vote, queue, execute."""
    cfg: GovKitConfig = ctx.obj["config"]
    account = ctx.obj["account"]

    async def main() -> ProposalReport:
        async with open_orchestrator(cfg, account) as orch:
            request = build_request(cfg, orch.deployment, function, args, description)
            ballots = [Ballot(voter=account, support=VoteType.FOR, reason=cfg.action.vote_reason)]
            return await orch.run(request, ballots)

    report = run_async(main())
    for step in report.steps:
        print_step(step)
    click.echo(f"Final state: {state_style(report.state)}")


@cli.command("state")
@click.option("--proposal-id", help="Proposal id (decimal or 0x hex)")
@click.pass_context
def state_cmd(ctx, proposal_id: Optional[str]):
    """Show the state, tallies and timelock operation of a proposal."""
    cfg: GovKitConfig = ctx.obj["config"]

    async def main():
        async with open_orchestrator(cfg, ctx.obj["account"]) as orch:
            pid = await resolve_proposal_id(orch, cfg, proposal_id)
            state = await orch.state(pid)
            if state is None:
                return pid, None, None, None
            votes = await orch.retry("read votes", lambda: orch.governor.call("proposalVotes", pid))
            op_id = await orch.retry(
                "read operation", lambda: orch.governor.call("proposalOperationId", pid)
            )
            return pid, state, votes, op_id

    pid, state, votes, op_id = run_async(main())
    click.echo(f"Proposal:  {pid}")
    click.echo(f"State:     {state_style(state)}")
    if votes is not None:
        against, for_votes, abstain = votes
        click.echo(f"Votes:     for={for_votes} against={against} abstain={abstain}")
    if op_id and any(op_id):
        click.echo(f"Operation: 0x{op_id.hex()}")


if __name__ == "__main__":
    cli()
