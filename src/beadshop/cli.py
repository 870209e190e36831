"""Command-line interface for beadshop."""

import argparse
import json
import logging
import sys
from pathlib import Path

from . import __version__
from .accounts import AccountStore
from .catalog import Catalog, product_view
from .config import Settings
from .errors import ShopError
from .models import OrderStatus, Product, Role, _generate_id
from .order_store import OrderStore
from .utils import format_money


def get_settings(args: argparse.Namespace) -> Settings:
    """Load settings from the environment, honoring --data-dir."""
    settings = Settings.from_env()
    if getattr(args, "data_dir", None):
        settings.data_dir = Path(args.data_dir)
    return settings


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    try:
        import uvicorn

        settings = get_settings(args)
        logging.basicConfig(
            level=settings.log_level.upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        print("Starting beadshop API server...")
        print(f"Data directory: {settings.data_dir}")
        print(f"API docs: http://{args.host}:{args.port}/docs")
        print()

        # When reload is enabled, uvicorn requires the app as an import string
        app_target = "beadshop.api:app" if args.reload else None
        if app_target is None:
            from .api import app
            app_target = app

        uvicorn.run(
            app_target,
            host=args.host,
            port=args.port,
            reload=args.reload,
            workers=1,  # Single worker; the file locks are per host, not per cluster
        )
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_list(args: argparse.Namespace) -> int:
    """List orders, newest first."""
    try:
        store = OrderStore(get_settings(args).data_dir)
        status = OrderStatus(args.status) if args.status else None
        orders, pagination = store.search(status=status, search=args.search, page=1, limit=args.limit)

        if not orders:
            print("No orders found.")
            return 0

        if args.json:
            print(json.dumps([o.to_dict() for o in orders], indent=2))
            return 0

        print(f"Orders ({len(orders)} of {pagination['total']}):")
        for order in orders:
            print(
                f"  {order.order_number:<24} {order.status.value:<28} "
                f"{format_money(order.total):>10}  {order.customer_email}"
            )
        return 0

    except ShopError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_show(args: argparse.Namespace) -> int:
    """Show a single order by its number."""
    try:
        store = OrderStore(get_settings(args).data_dir)
        order = store.get_by_number(args.order_number)

        if args.json:
            print(json.dumps(order.to_dict(), indent=2))
            return 0

        print(f"Order {order.order_number} ({order.id})")
        print(f"  Status:   {order.status.value} / payment {order.payment_status.value}")
        print(f"  Customer: {order.customer_email}")
        print(f"  Created:  {order.created_at}")
        print("  Items:")
        for item in order.items:
            variant = " ".join(v for v in (item.size, item.color) if v)
            suffix = f" ({variant})" if variant else ""
            print(f"    {item.quantity} x {item.name}{suffix} @ {format_money(item.price)}")
        print(f"  Subtotal: {format_money(order.subtotal)}")
        print(f"  Shipping: {format_money(order.shipping_cost)}")
        print(f"  Tax:      {format_money(order.tax)}")
        print(f"  Total:    {format_money(order.total)}")
        if order.shipment and order.shipment.tracking_number:
            print(f"  Tracking: {order.shipment.carrier} {order.shipment.tracking_number}")
        return 0

    except ShopError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_products_import(args: argparse.Namespace) -> int:
    """Import products from a JSON file (a list of product objects)."""
    try:
        path = Path(args.file)
        try:
            data = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            print(f"Error: Cannot read {path}: {e}", file=sys.stderr)
            return 1

        if isinstance(data, dict):
            data = data.get("products", [])
        if not isinstance(data, list):
            print("Error: Expected a list of products", file=sys.stderr)
            return 1

        catalog = Catalog(get_settings(args).data_dir)
        imported = 0
        for entry in data:
            entry.setdefault("id", _generate_id())
            product = Product.from_dict(entry)
            catalog.add_product(product)
            imported += 1

        print(f"Imported {imported} product(s)")
        return 0

    except (KeyError, TypeError, ValueError) as e:
        print(f"Error: Malformed product entry: {e}", file=sys.stderr)
        return 1
    except ShopError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_products_list(args: argparse.Namespace) -> int:
    """List catalog products, including inactive ones."""
    try:
        catalog = Catalog(get_settings(args).data_dir)
        products = sorted(catalog.all_products(), key=lambda p: p.name.lower())

        if not products:
            print("No products found.")
            return 0

        if args.json:
            print(json.dumps([product_view(p) for p in products], indent=2))
            return 0

        print(f"Products ({len(products)}):")
        for product in products:
            view = product_view(product)
            flags = []
            if not product.is_active:
                flags.append("inactive")
            if view.get("salePrice") is not None:
                flags.append("on sale")
            flag_str = f" [{', '.join(flags)}]" if flags else ""
            print(
                f"  {product.id[:8]}  {product.name:<32} "
                f"{format_money(view['effectivePrice']):>10}  stock {view['totalStock']}{flag_str}"
            )
        return 0

    except ShopError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_roles_assign(args: argparse.Namespace) -> int:
    """Assign a role to an email; applied on that user's next sign-in."""
    try:
        accounts = AccountStore(get_settings(args).data_dir)
        assignment = accounts.assign_role(args.email, Role(args.role), "cli")
        print(f"Assigned role '{assignment.assigned_role.value}' to {assignment.email}")
        return 0

    except ShopError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="beadshop",
        description="Storefront and order back office for a handmade jewelry shop.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "--data-dir", help="Data directory (default: $BEADSHOP_DATA_DIR or ./data)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument(
        "--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)"
    )
    serve_parser.add_argument(
        "--port", type=int, default=8000, help="Port to bind to (default: 8000)"
    )
    serve_parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )

    # orders (with subcommands)
    orders_parser = subparsers.add_parser("orders", help="Inspect orders")
    orders_subparsers = orders_parser.add_subparsers(dest="orders_command", help="Orders commands")

    orders_list_parser = orders_subparsers.add_parser("list", help="List orders")
    orders_list_parser.add_argument(
        "--status", choices=[s.value for s in OrderStatus], help="Filter by status"
    )
    orders_list_parser.add_argument("--search", help="Match order number, email, or name")
    orders_list_parser.add_argument(
        "--limit", type=int, default=50, help="Maximum orders to show (default: 50)"
    )
    orders_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    orders_show_parser = orders_subparsers.add_parser("show", help="Show one order")
    orders_show_parser.add_argument("order_number", help="Order number, e.g. ORD-...")
    orders_show_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # products (with subcommands)
    products_parser = subparsers.add_parser("products", help="Manage the catalog")
    products_subparsers = products_parser.add_subparsers(
        dest="products_command", help="Products commands"
    )

    products_import_parser = products_subparsers.add_parser(
        "import", help="Import products from a JSON file"
    )
    products_import_parser.add_argument("file", help="Path to JSON file")

    products_list_parser = products_subparsers.add_parser("list", help="List products")
    products_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # roles (with subcommands)
    roles_parser = subparsers.add_parser("roles", help="Manage role assignments")
    roles_subparsers = roles_parser.add_subparsers(dest="roles_command", help="Roles commands")

    roles_assign_parser = roles_subparsers.add_parser("assign", help="Assign a role to an email")
    roles_assign_parser.add_argument("email", help="User email address")
    roles_assign_parser.add_argument(
        "role", choices=[r.value for r in Role], help="Role to assign"
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    nested = {
        "orders": ("orders_command", {"list": cmd_orders_list, "show": cmd_orders_show}),
        "products": (
            "products_command",
            {"import": cmd_products_import, "list": cmd_products_list},
        ),
        "roles": ("roles_command", {"assign": cmd_roles_assign}),
    }
    if args.command in nested:
        dest, commands = nested[args.command]
        sub = getattr(args, dest, None)
        if not sub:
            parser.parse_args([args.command, "--help"])
            return 0
        return commands[sub](args)

    commands = {
        "serve": cmd_serve,
    }

    cmd_func = commands.get(args.command)
    if cmd_func:
        return cmd_func(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
