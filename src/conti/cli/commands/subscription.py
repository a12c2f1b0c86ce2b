"""Subscription management commands."""

from datetime import datetime

import click

from conti.cli.account_resolution import resolve_account
from conti.cli.error_handling import handle_domain_error, run_async
from conti.cli.formatting import subscription_line
from conti.domain.account import AccountService
from conti.domain.entities import Frequency
from conti.domain.errors import NotFoundError, subscription_not_found
from conti.domain.renewal import RenewalProcessor
from conti.domain.subscription import DEFAULT_CATEGORY, SubscriptionService
from conti.domain.transaction import TransactionService
from conti.utils.amount_parser import parse_amount
from conti.utils.date_parser import parse_date

FREQUENCIES = [f.value for f in Frequency]


def _parse_optional_date(ctx, value: str | None, label: str):
    if value is None:
        return None
    try:
        return parse_date(value)
    except ValueError as e:
        click.echo(f"Error: Invalid {label}: {e}", err=True)
        ctx.exit(1)


@click.group()
def subscription_group():
    """Manage recurring subscriptions."""
    pass


@subscription_group.command("create")
@click.argument("name")
@click.argument("amount")
@click.option("--account", required=True, help="Account name or ID charged on renewal")
@click.option("--frequency", type=click.Choice(FREQUENCIES, case_sensitive=False), default="MONTHLY", show_default=True)
@click.option("--category", default=DEFAULT_CATEGORY, show_default=True)
@click.option("--start-date", help="First day of the subscription (defaults to today)")
@click.option("--next-renewal", help="Next charge date (defaults to the start date)")
@click.option("--description")
@click.option("--notes")
@click.pass_context
def create_subscription(ctx, name, amount, account, frequency, category, start_date, next_renewal, description, notes):
    """Create a subscription.

    Examples:
        conti subscription create Netflix 12,99 --account "Conto Corrente"
        conti subscription create Assicurazione 360 --account 3f2a... --frequency ANNUAL --start-date 2025-03-01
    """
    try:
        value = parse_amount(amount)
    except ValueError as e:
        handle_domain_error(ctx, e)
    start = _parse_optional_date(ctx, start_date, "start date")
    renewal = _parse_optional_date(ctx, next_renewal, "next renewal date")

    async def work(db):
        identity = ctx.obj["identity"]
        account_id = await resolve_account(AccountService(db, identity), account)
        return await SubscriptionService(db, identity).create_subscription(
            account_id=account_id,
            name=name,
            amount=value,
            frequency=frequency,
            category=category,
            start_date=start,
            next_renewal_date=renewal,
            description=description,
            notes=notes,
        )

    subscription_id = run_async(ctx, work)
    click.echo(f"Created subscription '{name}' (ID: {subscription_id})")


@subscription_group.command("list")
@click.option("--all", "include_inactive", is_flag=True, help="Include deactivated subscriptions")
@click.pass_context
def list_subscriptions(ctx, include_inactive: bool):
    """List subscriptions."""

    async def work(db):
        service = SubscriptionService(db, ctx.obj["identity"])
        return await service.list_subscriptions(active_only=not include_inactive)

    subscriptions = run_async(ctx, work)
    if not subscriptions:
        click.echo("No subscriptions found.")
        return
    for sub in subscriptions:
        click.echo(subscription_line(sub))


@subscription_group.command("update")
@click.argument("subscription_id")
@click.option("--name")
@click.option("--amount")
@click.option("--account", help="Account name or ID")
@click.option("--frequency", type=click.Choice(FREQUENCIES, case_sensitive=False))
@click.option("--category")
@click.option("--start-date")
@click.option("--next-renewal")
@click.option("--description")
@click.option("--notes")
@click.pass_context
def update_subscription(ctx, subscription_id, name, amount, account, frequency, category, start_date, next_renewal, description, notes):
    """Update subscription fields."""
    changes = {}
    if amount is not None:
        try:
            changes["amount"] = parse_amount(amount)
        except ValueError as e:
            handle_domain_error(ctx, e)
    for key, value in (
        ("name", name),
        ("frequency", frequency),
        ("category", category),
        ("description", description),
        ("notes", notes),
    ):
        if value is not None:
            changes[key] = value
    if start_date is not None:
        changes["start_date"] = _parse_optional_date(ctx, start_date, "start date")
    if next_renewal is not None:
        changes["next_renewal_date"] = _parse_optional_date(ctx, next_renewal, "next renewal date")
    if not changes and account is None:
        click.echo("Error: Nothing to update", err=True)
        ctx.exit(1)

    async def work(db):
        identity = ctx.obj["identity"]
        if account is not None:
            changes["account_id"] = await resolve_account(AccountService(db, identity), account)
        await SubscriptionService(db, identity).update_subscription(subscription_id, **changes)

    run_async(ctx, work)
    click.echo(f"Updated subscription {subscription_id}")


@subscription_group.command("deactivate")
@click.argument("subscription_id")
@click.pass_context
def deactivate_subscription(ctx, subscription_id: str):
    """Stop a subscription without deleting it."""

    async def work(db):
        await SubscriptionService(db, ctx.obj["identity"]).deactivate_subscription(subscription_id)

    run_async(ctx, work)
    click.echo(f"Deactivated subscription {subscription_id}")


@subscription_group.command("reactivate")
@click.argument("subscription_id")
@click.pass_context
def reactivate_subscription(ctx, subscription_id: str):
    """Resume a deactivated subscription."""

    async def work(db):
        await SubscriptionService(db, ctx.obj["identity"]).reactivate_subscription(subscription_id)

    run_async(ctx, work)
    click.echo(f"Reactivated subscription {subscription_id}")


@subscription_group.command("delete")
@click.argument("subscription_id")
@click.pass_context
def delete_subscription(ctx, subscription_id: str):
    """Delete a subscription permanently. Past charges are kept."""

    async def work(db):
        await SubscriptionService(db, ctx.obj["identity"]).delete_subscription(subscription_id)

    run_async(ctx, work)
    click.echo(f"Deleted subscription {subscription_id}")


def _processor(db, identity) -> RenewalProcessor:
    return RenewalProcessor(TransactionService(db, identity), SubscriptionService(db, identity))


@subscription_group.command("renew")
@click.argument("subscription_id")
@click.pass_context
def renew_subscription(ctx, subscription_id: str):
    """Charge the next renewal of a subscription now."""

    async def work(db):
        identity = ctx.obj["identity"]
        subscription = await SubscriptionService(db, identity).get_subscription(subscription_id)
        if subscription is None:
            raise NotFoundError(subscription_not_found(subscription_id))
        return await _processor(db, identity).process_renewal(subscription)

    outcome = run_async(ctx, work)
    click.echo(
        f"Charged {outcome.amount:,.2f} on {outcome.charged_on:%Y-%m-%d}; "
        f"next renewal {outcome.next_renewal_date:%Y-%m-%d}"
    )


@subscription_group.command("renew-due")
@click.pass_context
def renew_due(ctx):
    """Charge every subscription whose renewal date has passed."""

    async def work(db):
        return await _processor(db, ctx.obj["identity"]).process_due_renewals(now=datetime.now())

    outcomes = run_async(ctx, work)
    if not outcomes:
        click.echo("No subscriptions due.")
        return
    for outcome in outcomes:
        click.echo(
            f"{outcome.subscription_id}: charged {outcome.amount:,.2f} on {outcome.charged_on:%Y-%m-%d}, "
            f"next {outcome.next_renewal_date:%Y-%m-%d}"
        )


@subscription_group.command("expiring")
@click.option("--days", type=int, default=7, show_default=True, help="Look-ahead window in days")
@click.pass_context
def expiring_subscriptions(ctx, days: int):
    """List subscriptions renewing within the next few days."""

    async def work(db):
        return await SubscriptionService(db, ctx.obj["identity"]).get_expiring_subscriptions(threshold_days=days)

    subscriptions = run_async(ctx, work)
    if not subscriptions:
        click.echo(f"No subscriptions renewing in the next {days} days.")
        return
    for sub in subscriptions:
        click.echo(subscription_line(sub))


@subscription_group.command("cost")
@click.pass_context
def subscription_cost(ctx):
    """Show the monthly cost of active subscriptions."""

    async def work(db):
        return await SubscriptionService(db, ctx.obj["identity"]).get_total_monthly_subscription_cost()

    total = run_async(ctx, work)
    click.echo(f"Monthly subscription cost: {total:,.2f}")


def register_commands(cli):
    """Register subscription commands with main CLI."""
    cli.add_command(subscription_group, name="subscription")
