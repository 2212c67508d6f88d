"""
ordersaga CLI - Built with Click.

Places orders against an in-memory world seeded from a YAML fixture, which is
handy for trying out pricing, promotions and failure paths without any
external service.

Fixture format:

    customers:
      - {id: C1, name: Ada, email: ada@example.com}
    products:
      - {id: P1, name: Widget, price: "10.00", stock: 5}
    promotions:
      - {id: SPRING, active: true, min_amount: "50", discount_pct: "10",
         eligible_product_ids: [P1]}
    tax_rates:
      default: "0.10"
    declined_customers: [C2]
"""

import asyncio
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import click
import yaml

from ordersaga import __version__
from ordersaga.audit import InMemoryAuditRecorder
from ordersaga.catalog import InMemoryCatalog
from ordersaga.core.config import OrderSagaConfig
from ordersaga.core.exceptions import OrderSagaError, error_category
from ordersaga.inventory.memory import InMemoryInventory
from ordersaga.monitoring.logging import setup_saga_logging
from ordersaga.notifications.memory import InMemoryNotificationDispatcher
from ordersaga.orders.models import Customer, Product, Promotion
from ordersaga.orders.pricing import PricingEngine
from ordersaga.orders.saga import OrderSaga
from ordersaga.orders.store import InMemoryOrderStore
from ordersaga.orders.validator import OrderValidator
from ordersaga.payments.memory import InMemoryPaymentGateway
from ordersaga.payments.retry import RetryingPaymentClient

# ============================================================================
# Fixture loading
# ============================================================================


@dataclass
class World:
    catalog: InMemoryCatalog
    inventory: InMemoryInventory
    payments: InMemoryPaymentGateway

    def order_saga(self, config: OrderSagaConfig) -> OrderSaga:
        return OrderSaga(
            validator=OrderValidator(self.catalog, self.catalog),
            pricing=PricingEngine(
                self.catalog, self.catalog, self.catalog, config.default_tax_rate
            ),
            inventory=self.inventory,
            payments=RetryingPaymentClient.from_config(self.payments, config),
            store=InMemoryOrderStore(),
            audit=InMemoryAuditRecorder(),
            notifier=InMemoryNotificationDispatcher(),
            config=config,
        )


def load_fixture(path: str | Path) -> World:
    """Build in-memory collaborators from a YAML fixture file."""
    with Path(path).open() as f:
        data = yaml.safe_load(f) or {}

    customers = [Customer(**c) for c in data.get("customers", [])]
    products = []
    stock: dict[str, int] = {}
    for raw in data.get("products", []):
        raw = dict(raw)
        stock[raw["id"]] = int(raw.pop("stock", 0))
        products.append(Product(**raw))
    promotions = [Promotion(**p) for p in data.get("promotions", [])]

    catalog = InMemoryCatalog(
        customers=customers,
        products=products,
        promotions=promotions,
        tax_rates=data.get("tax_rates") or {},
    )
    return World(
        catalog=catalog,
        inventory=InMemoryInventory(stock),
        payments=InMemoryPaymentGateway(set(data.get("declined_customers", []))),
    )


def _load_config(config_path: str | None) -> OrderSagaConfig:
    config = OrderSagaConfig.from_file(config_path) if config_path else OrderSagaConfig.from_env()
    # The CLI reports outcomes itself; lifecycle logging only follows --log-level
    return config.with_overrides(logging=False)


def _parse_items(ctx, param, values: tuple[str, ...]) -> list[dict[str, Any]]:
    items = []
    for value in values:
        product_id, sep, quantity = value.partition(":")
        if not product_id or (sep and not quantity.isdigit()):
            msg = f"'{value}' is not PRODUCT or PRODUCT:QUANTITY"
            raise click.BadParameter(msg)
        items.append({"productId": product_id, "quantity": int(quantity) if sep else 1})
    return items


# ============================================================================
# CLI Group
# ============================================================================


class OrderedGroup(click.Group):
    """Click Group that lists commands in the order they were added."""

    def list_commands(self, ctx):
        return list(self.commands.keys())


@click.group(cls=OrderedGroup)
@click.version_option(version=__version__, prog_name="ordersaga")
def cli():
    """
    ordersaga - Order fulfillment saga.

    \b
    Commands:
      place-order      Place an order against a YAML fixture
      show-config      Print the resolved configuration
    """


@cli.command("place-order")
@click.option(
    "--fixture",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="YAML file with customers, products, stock, promotions and tax rates",
)
@click.option("--customer", "customer_id", required=True, help="Customer id")
@click.option(
    "--item",
    "items",
    multiple=True,
    callback=_parse_items,
    help="PRODUCT:QUANTITY, repeatable",
)
@click.option("--address", default="", help="Shipping address")
@click.option("--region", default=None, help="Tax region (defaults to configured region)")
@click.option(
    "--config", "config_path", type=click.Path(exists=True, dir_okay=False), default=None
)
@click.option("--log-level", default=None, help="Enable saga logs at this level")
@click.option("--json-logs/--plain-logs", default=True)
def place_order_cmd(fixture, customer_id, items, address, region, config_path, log_level, json_logs):
    """
    Place one order and print it as JSON.

    \b
    Example:
        ordersaga place-order --fixture world.yaml --customer C1 \\
            --item P1:2 --address "1 Main St"

    Failures print their category and exit with status 1.
    """
    config = _load_config(config_path)
    if log_level:
        setup_saga_logging(log_level, json_format=json_logs)
        config = config.with_overrides(logging=True)

    world = load_fixture(fixture)
    orders = world.order_saga(config)
    shipping_address: Any = address
    if region and address:
        shipping_address = {"line1": address, "region": region}

    try:
        order = asyncio.run(orders.create_order(customer_id, items, shipping_address))
    except OrderSagaError as e:
        category, status = error_category(e)
        click.echo(f"{category} ({status}): {e}", err=True)
        sys.exit(1)

    click.echo(json.dumps(order.to_dict(), indent=2))


@cli.command("show-config")
@click.option(
    "--config", "config_path", type=click.Path(exists=True, dir_okay=False), default=None
)
def show_config_cmd(config_path):
    """Print the configuration resolved from the environment (or --config file)."""
    config = OrderSagaConfig.from_file(config_path) if config_path else OrderSagaConfig.from_env()
    click.echo(json.dumps(config.as_dict(), indent=2))


def main():  # pragma: no cover
    cli()


if __name__ == "__main__":  # pragma: no cover
    main()
