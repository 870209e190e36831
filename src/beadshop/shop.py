"""Wiring of stores, collaborators, and services into one Shop object."""

from dataclasses import dataclass

from .accounts import AccountStore
from .auth import Authorizer, JWTSessionAuthorizer
from .cart import CartManager
from .catalog import Catalog
from .config import Settings
from .lifecycle import OrderService
from .mailer import EmailRelay, ResendRelay
from .order_store import OrderStore
from .ordering import CustomerOrders
from .payments import PaymentProcessor, StripeClient
from .shipping import ShippingAggregator, ShippoClient


@dataclass
class Shop:
    settings: Settings
    orders: OrderStore
    catalog: Catalog
    carts: CartManager
    accounts: AccountStore
    payments: PaymentProcessor
    shipping: ShippingAggregator
    mailer: EmailRelay
    authorizer: Authorizer
    admin: OrderService
    customers: CustomerOrders


def build_shop(
    settings: Settings,
    payments: PaymentProcessor | None = None,
    shipping: ShippingAggregator | None = None,
    mailer: EmailRelay | None = None,
    authorizer: Authorizer | None = None,
) -> Shop:
    """
    Build a Shop from settings.

    Collaborators default to the real HTTP clients; tests pass fakes.
    """
    payments = payments or StripeClient(settings.stripe_secret_key)
    shipping = shipping or ShippoClient(settings.shippo_api_key)
    mailer = mailer or ResendRelay(settings.resend_api_key, settings.email_from)
    authorizer = authorizer or JWTSessionAuthorizer(
        settings.auth_jwt_key, settings.auth_jwt_algorithm
    )

    orders = OrderStore(settings.data_dir)
    catalog = Catalog(settings.data_dir)
    return Shop(
        settings=settings,
        orders=orders,
        catalog=catalog,
        carts=CartManager(settings.data_dir, catalog),
        accounts=AccountStore(settings.data_dir),
        payments=payments,
        shipping=shipping,
        mailer=mailer,
        authorizer=authorizer,
        admin=OrderService(orders, catalog, payments, shipping, mailer, settings),
        customers=CustomerOrders(orders, catalog, payments, settings),
    )
