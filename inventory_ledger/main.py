import argparse
import sys

from inventory_ledger.config import config
from inventory_ledger.db import db, session_scope
from inventory_ledger.exceptions import LedgerError, ValidationError
from inventory_ledger.logging_setup import logger, get_logger
from inventory_ledger.services.batch_service import BatchService
from inventory_ledger.services.catalog_service import CatalogService
from inventory_ledger.services.inventory_service import InventoryService
from inventory_ledger.services.location_service import LocationService
from inventory_ledger.services.movement_service import MovementService
from inventory_ledger.services.reorder_service import ReorderService

log = get_logger('cli')

def init_application():
    """Initialize application components."""
    db.initialize()

    app_log = logger.app_logger
    app_log.info("Inventory Ledger initialized")
    app_log.info(f"Using database: {config.get('DATABASE', 'engine')}")

    return True

def setup_database(args):
    """Create tables and seed the fixed locations."""
    if args.drop:
        log.warning("Dropping all tables")
        db.drop_all_tables()

    db.create_all_tables()

    with session_scope() as session:
        created = LocationService(session).seed_default_locations()

    print(f"Database ready ({created} locations created)")

def add_product(args):
    with session_scope() as session:
        CatalogService(session).register_product(
            product_code=args.product_code,
            product_name=args.name,
            base_price=args.price,
            category=args.category,
            discount_type=args.discount_type,
            discount_value=args.discount_value,
            stock_capacity=args.capacity
        )
    print(f"Registered {args.product_code.upper()}")

def show_product(args):
    with session_scope() as session:
        summary = CatalogService(session).product_summary(args.product_code)
        average_cost = BatchService(session).unit_cost_summary(args.product_code)

    status = 'active' if summary['is_active'] else 'inactive'
    discount = f" ({summary['discount']})" if summary['discount'] else ''

    print(f"{summary['product_code']} {summary['product_name']} ({status})")
    print(f"  Price:     {summary['base_price']} -> {summary['final_price']}{discount}")
    print(f"  Capacity:  {summary['stock_capacity'] or 'default'}")
    print(f"  Avg cost:  {average_cost if average_cost is not None else 'n/a'}")

def set_discount(args):
    with session_scope() as session:
        catalog = CatalogService(session)
        if args.remove:
            summary = catalog.remove_discount(args.product_code)
        elif args.percentage is not None:
            summary = catalog.set_percentage_discount(args.product_code, args.percentage)
        else:
            summary = catalog.set_fixed_discount(args.product_code, args.amount)

    print(f"{summary['product_code']} now {summary['final_price']} ({summary['discount'] or 'no discount'})")

def show_storefront(args):
    with session_scope() as session:
        catalog = CatalogService(session)
        if args.search:
            listings = catalog.search_products(args.search)
        elif args.category:
            listings = catalog.get_products_by_category(args.category)
        else:
            print(f"Categories: {', '.join(catalog.get_available_categories()) or 'none'}")
            listings = catalog.get_featured_products(args.limit)

    if not listings:
        print("No products available online")
        return

    for item in listings:
        discount = f" ({item['discount']})" if item['has_discount'] else ''
        print(
            f"{item['product_code']:<10} {item['product_name']:<30} "
            f"{item['final_price']:>8}{discount}  {item['available_quantity']} online"
        )

def parse_allocations(values):
    """Parse LOCATION=QTY pairs."""
    allocations = {}
    for value in values:
        location, sep, quantity = value.partition('=')
        if not sep or not quantity.strip().isdigit():
            raise ValidationError(f"Expected LOCATION=QTY, got {value}")
        allocations[location] = int(quantity)
    return allocations

def receive_stock(args):
    with session_scope() as session:
        result = MovementService(session).receive_stock(
            product_code=args.product_code,
            unit_cost=args.unit_cost,
            allocations=parse_allocations(args.allocations),
            expiry_date=args.expiry,
            reason=args.reason,
            batch_code=args.batch_code
        )
    print(f"Received batch {result['batch_code']}: {result['quantity_received']} units {result['placements']}")

def transfer_stock(args):
    with session_scope() as session:
        result = MovementService(session).transfer(
            args.product_code, args.from_location, args.to_location, args.quantity, args.reason
        )
    print(
        f"Moved {result['quantity']} {result['product_code']} "
        f"from {result['from_location']} to {result['to_location']}"
    )

def adjust_stock(args):
    with session_scope() as session:
        result = MovementService(session).adjust(
            args.product_code, args.location, args.delta, args.reason
        )
    print(f"{result['product_code']} at {result['location_code']} is now {result['new_quantity']}")

def show_stock(args):
    with session_scope() as session:
        inventory = InventoryService(session)
        by_location = inventory.get_quantity_by_location(args.product_code)
        print(f"Stock for {args.product_code.upper()}:")
        for location_type, quantity in by_location.items():
            print(f"  {location_type.value:<18} {quantity:>8}")
        print(f"  {'TOTAL':<18} {sum(by_location.values()):>8}")

def evaluate_reorders(args):
    with session_scope() as session:
        service = ReorderService(session)
        if args.product_code:
            result = service.evaluate_product(args.product_code)
            status = result['severity'].value if result['needs_reorder'] else 'OK'
            print(
                f"{result['product_code']}: stock {result['current_stock']}, "
                f"threshold {result['threshold']} ({result['velocity_tier'].value}) -> {status}"
            )
        else:
            results = service.evaluate_all()
            print(
                f"Evaluated {results['evaluated']} products: {results['alerts_raised']} alerts "
                f"({results['critical']} critical), {results['errors']} errors"
            )

def list_alerts(args):
    with session_scope() as session:
        alerts = ReorderService(session).get_reorder_alerts(args.status)

    if not alerts:
        print("No reorder alerts")
        return

    for alert in alerts:
        print(
            f"{alert['id']:>5} {alert['alert_type']:<17} {alert['product_code']:<10} "
            f"stock {alert['current_quantity']:>5} / threshold {alert['threshold_quantity']:>5} "
            f"suggest {alert['suggested_order_quantity']:>5}"
        )

COMMANDS = {
    'init-db': setup_database,
    'add-product': add_product,
    'product': show_product,
    'discount': set_discount,
    'storefront': show_storefront,
    'receive': receive_stock,
    'transfer': transfer_stock,
    'adjust': adjust_stock,
    'stock': show_stock,
    'evaluate': evaluate_reorders,
    'alerts': list_alerts,
}

def build_parser():
    parser = argparse.ArgumentParser(description='Inventory Ledger')
    subparsers = parser.add_subparsers(dest='command', help='Commands')

    init_parser = subparsers.add_parser('init-db', help='Create tables and seed locations')
    init_parser.add_argument('--drop', action='store_true', help='Drop existing tables first')

    product_parser = subparsers.add_parser('add-product', help='Register a product')
    product_parser.add_argument('product_code')
    product_parser.add_argument('--name', required=True)
    product_parser.add_argument('--price', required=True)
    product_parser.add_argument('--category')
    product_parser.add_argument('--discount-type', choices=['PERCENTAGE', 'AMOUNT'])
    product_parser.add_argument('--discount-value')
    product_parser.add_argument('--capacity', type=int, help='Stock capacity used for reorder thresholds')

    show_parser = subparsers.add_parser('product', help='Show a product')
    show_parser.add_argument('product_code')

    discount_parser = subparsers.add_parser('discount', help='Set or remove a product discount')
    discount_parser.add_argument('product_code')
    discount_group = discount_parser.add_mutually_exclusive_group(required=True)
    discount_group.add_argument('--percentage', help='Percentage off, 0-100')
    discount_group.add_argument('--amount', help='Fixed amount off')
    discount_group.add_argument('--remove', action='store_true', help='Remove the discount')

    storefront_parser = subparsers.add_parser('storefront', help='List products available online')
    storefront_parser.add_argument('--search', help='Match name, code or category')
    storefront_parser.add_argument('--category')
    storefront_parser.add_argument('--limit', type=int, default=5, help='Featured products to show')

    receive_parser = subparsers.add_parser('receive', help='Receive a new batch')
    receive_parser.add_argument('product_code')
    receive_parser.add_argument('allocations', nargs='+', help='LOCATION=QTY pairs, e.g. WAREHOUSE=80 SHELF=20')
    receive_parser.add_argument('--unit-cost', required=True)
    receive_parser.add_argument('--expiry', help='Expiry date (YYYY-MM-DD)')
    receive_parser.add_argument('--batch-code')
    receive_parser.add_argument('--reason')

    transfer_parser = subparsers.add_parser('transfer', help='Move stock between locations')
    transfer_parser.add_argument('product_code')
    transfer_parser.add_argument('from_location')
    transfer_parser.add_argument('to_location')
    transfer_parser.add_argument('quantity', type=int)
    transfer_parser.add_argument('--reason')

    adjust_parser = subparsers.add_parser('adjust', help='Correct stock at a location')
    adjust_parser.add_argument('product_code')
    adjust_parser.add_argument('location')
    adjust_parser.add_argument('delta', type=int)
    adjust_parser.add_argument('--reason')

    stock_parser = subparsers.add_parser('stock', help='Show stock by location')
    stock_parser.add_argument('product_code')

    evaluate_parser = subparsers.add_parser('evaluate', help='Evaluate reorder needs')
    evaluate_parser.add_argument('product_code', nargs='?')

    alerts_parser = subparsers.add_parser('alerts', help='List reorder alerts')
    alerts_parser.add_argument('--status', default='ACTIVE')

    return parser

def main(argv=None):
    """Main application entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    init_application()

    try:
        COMMANDS[args.command](args)
    except LedgerError as e:
        log.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0

if __name__ == "__main__":
    sys.exit(main())
