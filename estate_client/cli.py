"""
Estate CLI - Command-line interface over the marketplace SDK.

This layer provides user-facing commands, using the SDK layer for all
operations. It handles:
- Argument parsing
- TTY detection for human vs machine output
- Pretty formatting for human output
- JSON output for piping/automation
"""

import argparse
import asyncio
import getpass
import json
import logging
import os
import sys
from collections.abc import Awaitable, Callable
from typing import Any

from dotenv import load_dotenv

from estate_client.core.errors import EstateError, ValidationError
from estate_client.core.tokens import FileTokenStore
from estate_client.core.types import AuthResult, PropertyFilters
from estate_client.hooks import ContactBoard, Favorites, PropertyListing
from estate_client.sdk import DEFAULT_PAGE_SIZE, EstateClient

Command = Callable[[EstateClient, argparse.Namespace], Awaitable[None]]

# =============================================================================
# Output Helpers
# =============================================================================


def is_tty() -> bool:
    """Check if stdout is a TTY (human) or pipe (machine)."""
    return sys.stdout.isatty()


def json_output(data: Any, pretty: bool = False) -> None:
    """Print JSON output."""
    indent = 2 if pretty or is_tty() else None
    print(json.dumps(data, indent=indent, default=str))


def error_output(error: EstateError) -> None:
    """Print error and exit."""
    json_output(error.to_dict())
    sys.exit(1)


def success_output(data: Any) -> None:
    """Print success output."""
    json_output(data)


def table_output(
    headers: list[str],
    rows: list[list[str]],
    widths: list[int],
) -> None:
    """Print a formatted table for human output."""
    header_line = "  ".join(h.ljust(w) for h, w in zip(headers, widths))
    print(header_line)
    print("-" * len(header_line))

    for row in rows:
        print("  ".join(str(v)[:w].ljust(w) for v, w in zip(row, widths)))


def auth_output(result: AuthResult) -> None:
    """Print an auth flow outcome, exiting non-zero on failure."""
    if not result.success:
        error_output(EstateError(result.error or "Authentication failed"))
    success_output(result.to_dict())


def _password(args: argparse.Namespace) -> str:
    return args.password or os.environ.get("ESTATE_PASSWORD") or getpass.getpass("Password: ")


async def _require_session(client: EstateClient) -> None:
    """Validate the stored token; exit with the session error if there is none."""
    if not await client.session.start():
        error_output(EstateError(client.session.error or "Not logged in. Run 'estate auth login <email>' first."))


# =============================================================================
# Auth Commands
# =============================================================================


async def cmd_auth_login(client: EstateClient, args: argparse.Namespace) -> None:
    """Log in and store the session token."""
    result = await client.session.login(args.email, _password(args))
    auth_output(result)


async def cmd_auth_register(client: EstateClient, args: argparse.Namespace) -> None:
    """Create an account and store the session token."""
    user_data = {
        "email": args.email,
        "password": _password(args),
        "firstName": args.first_name,
        "lastName": args.last_name,
        "role": args.role,
    }
    if args.business_name:
        user_data["businessName"] = args.business_name
    result = await client.session.register(user_data)
    auth_output(result)


async def cmd_auth_logout(client: EstateClient, _args: argparse.Namespace) -> None:
    """Forget the stored session token."""
    client.session.logout()
    success_output({"success": True, "message": "Logged out"})


async def cmd_auth_me(client: EstateClient, _args: argparse.Namespace) -> None:
    """Show the logged-in user."""
    await _require_session(client)
    user = client.session.user
    if is_tty():
        print(f"{user.full_name or user.email} <{user.email}>")
        print(f"Role: {user.role}")
        if user.business_name:
            print(f"Business: {user.business_name}")
    else:
        success_output(user.to_dict())


# =============================================================================
# Property Commands
# =============================================================================


async def cmd_props_list(client: EstateClient, args: argparse.Namespace) -> None:
    """List properties, one page at a time."""
    if args.page < 1 or args.limit < 1:
        error_output(ValidationError("--page and --limit must be positive integers"))

    listing = PropertyListing(
        client.properties,
        filters=PropertyFilters(
            price_range=args.price,
            property_type=args.type,
            search_query=args.search or "",
        ),
        page_size=args.limit,
    )
    await listing.refresh()
    # Index where the most recently fetched page starts in listing.items
    start = 0
    while listing.page < args.page and listing.has_more:
        start = len(listing.items)
        await listing.load_more()
    listing.close()

    if listing.error is not None:
        error_output(listing.error)

    items = listing.items[start:] if listing.page == args.page else []
    if is_tty():
        if not items:
            print("No properties found.")
            return
        table_output(
            ["ID", "Title", "Type", "City", "Price"],
            [[p.id, p.title, p.property_type or "", p.city or "", p.price or ""] for p in items],
            [24, 36, 12, 16, 12],
        )
        if listing.has_more:
            print(f"\nMore results: use --page {args.page + 1}")
    else:
        success_output(
            {
                "data": [p.raw for p in items],
                "page": args.page,
                "has_more": listing.has_more,
            }
        )


async def cmd_props_get(client: EstateClient, args: argparse.Namespace) -> None:
    """Get a property by ID."""
    try:
        prop = await client.properties.get(args.property_id)
        success_output(prop.raw)
    except EstateError as e:
        error_output(e)


# =============================================================================
# Favorite Commands
# =============================================================================


async def cmd_fav_list(client: EstateClient, _args: argparse.Namespace) -> None:
    """List favorite property IDs."""
    await _require_session(client)
    favorites = Favorites(client.favorites, client.session)
    ids = await favorites.refresh()
    favorites.close()
    if favorites.error:
        error_output(EstateError(favorites.error))
    success_output({"data": sorted(ids)})


async def cmd_fav_toggle(client: EstateClient, args: argparse.Namespace) -> None:
    """Add or remove a property from favorites."""
    await _require_session(client)
    favorites = Favorites(client.favorites, client.session)
    await favorites.refresh()
    ok = await favorites.toggle(args.property_id)
    favorites.close()
    if not ok:
        error_output(EstateError(favorites.error or "Failed to update favorites"))
    success_output({"property_id": args.property_id, "favorite": favorites.is_favorite(args.property_id)})


# =============================================================================
# Agent / Review Commands
# =============================================================================


async def cmd_agents_list(client: EstateClient, args: argparse.Namespace) -> None:
    """List agents."""
    try:
        agents = await client.agents.list({"status": args.status})
    except EstateError as e:
        error_output(e)

    if is_tty():
        if not agents:
            print("No agents found.")
            return
        table_output(
            ["ID", "Name", "Business", "Status"],
            [[a.id, f"{a.first_name} {a.last_name}".strip(), a.business_name or "", a.status or ""] for a in agents],
            [24, 28, 28, 10],
        )
    else:
        success_output({"data": [a.raw for a in agents]})


async def cmd_reviews_list(client: EstateClient, args: argparse.Namespace) -> None:
    """List reviews, optionally for one property or agent."""
    try:
        if args.property:
            reviews = await client.reviews.for_property(args.property)
        elif args.agent:
            reviews = await client.reviews.for_agent(args.agent)
        else:
            reviews = await client.reviews.list()
    except EstateError as e:
        error_output(e)

    if is_tty():
        if not reviews:
            print("No reviews found.")
            return
        table_output(
            ["ID", "Rating", "Comment"],
            [[r.id, r.rating if r.rating is not None else "", r.comment] for r in reviews],
            [24, 6, 60],
        )
    else:
        success_output({"data": [r.raw for r in reviews]})


# =============================================================================
# Admin Commands
# =============================================================================


async def cmd_admin_stats(client: EstateClient, _args: argparse.Namespace) -> None:
    """Show dashboard statistics."""
    await _require_session(client)
    try:
        stats = await client.admin.dashboard_stats()
    except EstateError as e:
        error_output(e)
    success_output(stats)


async def cmd_admin_leads(client: EstateClient, args: argparse.Namespace) -> None:
    """List contact-form leads."""
    await _require_session(client)
    board = ContactBoard(client.admin, status_filter=args.status)
    await board.refresh()
    if board.error:
        error_output(EstateError(board.error))

    leads = board.visible()
    if is_tty():
        if not leads:
            print("No leads found.")
            return
        table_output(
            ["ID", "Name", "Email", "Status"],
            [[c.id, c.name, c.email, c.status] for c in leads],
            [24, 24, 32, 10],
        )
    else:
        success_output({"data": [c.raw for c in leads]})


# =============================================================================
# Argument Parser
# =============================================================================


def _help(parser: argparse.ArgumentParser) -> Command:
    async def show(_client: EstateClient, _args: argparse.Namespace) -> None:
        parser.print_help()

    return show


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="estate",
        description="Command-line client for the real-estate marketplace API",
    )
    parser.add_argument("--base-url", help="API base URL (or ESTATE_API_BASE_URL env var)")
    parser.add_argument("--token-file", help="Where the session token is stored (or ESTATE_TOKEN_FILE env var)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log HTTP traffic to stderr")

    subparsers = parser.add_subparsers(dest="command")

    # ========== Auth ==========
    auth = subparsers.add_parser("auth", help="Log in, register, log out")
    auth.set_defaults(func=_help(auth))
    auth_sub = auth.add_subparsers(dest="subcommand")

    a_login = auth_sub.add_parser("login", help="Log in")
    a_login.add_argument("email", help="Account email")
    a_login.add_argument("--password", "-p", help="Password (or ESTATE_PASSWORD env var, else prompt)")
    a_login.set_defaults(func=cmd_auth_login)

    a_register = auth_sub.add_parser("register", help="Create an account")
    a_register.add_argument("email", help="Account email")
    a_register.add_argument("--first-name", required=True, help="First name")
    a_register.add_argument("--last-name", required=True, help="Last name")
    a_register.add_argument("--role", default="user", choices=["user", "agent"], help="Account role")
    a_register.add_argument("--business-name", help="Agency name (agents)")
    a_register.add_argument("--password", "-p", help="Password (or ESTATE_PASSWORD env var, else prompt)")
    a_register.set_defaults(func=cmd_auth_register)

    a_logout = auth_sub.add_parser("logout", help="Forget the stored session")
    a_logout.set_defaults(func=cmd_auth_logout)

    a_me = auth_sub.add_parser("me", help="Show the logged-in user")
    a_me.set_defaults(func=cmd_auth_me)

    # ========== Properties ==========
    props = subparsers.add_parser("props", help="Browse property listings")
    props.set_defaults(func=_help(props))
    props_sub = props.add_subparsers(dest="subcommand")

    p_list = props_sub.add_parser("list", help="List properties")
    p_list.add_argument("--type", "-t", default="all", help="Property type filter")
    p_list.add_argument("--price", default="all", help="Price range filter (e.g. 0-100000)")
    p_list.add_argument("--search", "-s", help="Free-text search")
    p_list.add_argument("--page", type=int, default=1, help="Page number (1-based)")
    p_list.add_argument("--limit", "-l", type=int, default=DEFAULT_PAGE_SIZE, help="Page size")
    p_list.set_defaults(func=cmd_props_list)

    p_get = props_sub.add_parser("get", help="Get property details")
    p_get.add_argument("property_id", help="Property ID")
    p_get.set_defaults(func=cmd_props_get)

    # ========== Favorites ==========
    fav = subparsers.add_parser("fav", help="Manage favorite properties")
    fav.set_defaults(func=_help(fav))
    fav_sub = fav.add_subparsers(dest="subcommand")

    f_list = fav_sub.add_parser("list", help="List favorite property IDs")
    f_list.set_defaults(func=cmd_fav_list)

    f_toggle = fav_sub.add_parser("toggle", help="Add or remove a favorite")
    f_toggle.add_argument("property_id", help="Property ID")
    f_toggle.set_defaults(func=cmd_fav_toggle)

    # ========== Agents ==========
    agents = subparsers.add_parser("agents", help="Browse agents")
    agents.set_defaults(func=_help(agents))
    agents_sub = agents.add_subparsers(dest="subcommand")

    ag_list = agents_sub.add_parser("list", help="List agents")
    ag_list.add_argument("--status", default="all", help="Agent status filter")
    ag_list.set_defaults(func=cmd_agents_list)

    # ========== Reviews ==========
    reviews = subparsers.add_parser("reviews", help="Browse reviews")
    reviews.set_defaults(func=_help(reviews))
    reviews_sub = reviews.add_subparsers(dest="subcommand")

    r_list = reviews_sub.add_parser("list", help="List reviews")
    target = r_list.add_mutually_exclusive_group()
    target.add_argument("--property", help="Only reviews of this property")
    target.add_argument("--agent", help="Only reviews of this agent")
    r_list.set_defaults(func=cmd_reviews_list)

    # ========== Admin ==========
    admin = subparsers.add_parser("admin", help="Back-office commands (admin role)")
    admin.set_defaults(func=_help(admin))
    admin_sub = admin.add_subparsers(dest="subcommand")

    ad_stats = admin_sub.add_parser("stats", help="Dashboard statistics")
    ad_stats.set_defaults(func=cmd_admin_stats)

    ad_leads = admin_sub.add_parser("leads", help="Contact-form leads")
    ad_leads.add_argument("--status", default="all", help="Lead status filter (e.g. NEW, CONTACTED)")
    ad_leads.set_defaults(func=cmd_admin_leads)

    return parser


def main() -> None:
    """Main CLI entry point."""
    load_dotenv()
    parser = create_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        sys.exit(0)

    try:
        client = EstateClient(base_url=args.base_url, token_store=FileTokenStore(args.token_file))
    except ValidationError as e:
        error_output(e)

    # Run command (all subparsers have default funcs that print help)
    asyncio.run(args.func(client, args))


if __name__ == "__main__":
    main()
