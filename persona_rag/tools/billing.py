"""Stripe-backed billing tools: payment status and payment links."""

import json
import re
import unicodedata
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from stripe import StripeClient

from persona_rag.config import settings
from persona_rag.exceptions import ConfigurationMissingError
from persona_rag.utils.logger import get_logger

logger = get_logger(__name__)


def _field(obj: Any, key: str, default: Any = None) -> Any:
    # Stripe objects support `in` and item access but not `.get`
    if obj is None or isinstance(obj, str):
        return default
    return obj[key] if key in obj else default


def normalize_product_key(value: str) -> str:
    """
    Normalize a product name or payment-link key for fuzzy matching.

    Example:
        >>> normalize_product_key("Curso  Básico-Avançado")
        'curso_basico_avancado'
    """
    decomposed = unicodedata.normalize("NFKD", value.strip().lower())
    without_accents = "".join(c for c in decomposed if not unicodedata.combining(c))
    return re.sub(r"[\s\-]+", "_", without_accents)


def extract_payment_links(tool_config: Optional[Mapping[str, Any]]) -> Optional[Dict[str, str]]:
    """
    Read ``paymentLinks`` from a tool config as a ``{key: url}`` mapping.

    Returns None when the config or the mapping has an unexpected shape.
    """
    if not isinstance(tool_config, Mapping):
        return None

    links = tool_config.get("paymentLinks")
    if not isinstance(links, Mapping):
        return None
    if not all(isinstance(k, str) and isinstance(v, str) for k, v in links.items()):
        logger.warning("Ignoring paymentLinks config with non-string entries")
        return None

    return dict(links)


def match_payment_link(product: str, payment_links: Mapping[str, str]) -> Optional[str]:
    """First configured URL whose key contains the product or is contained in it."""
    product_key = normalize_product_key(product)
    if not product_key:
        return None

    for key, url in payment_links.items():
        key = normalize_product_key(key)
        if key and (product_key in key or key in product_key):
            return url
    return None


def _format_period_end(timestamp: Optional[int]) -> Optional[str]:
    if not timestamp:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%d/%m/%Y")


class StripeBillingTools:
    """
    Payment status lookups and payment-link resolution against Stripe.

    The client is created from ``STRIPE_SECRET_KEY`` on first use unless one
    is injected.
    """

    def __init__(self, client: Optional[StripeClient] = None):
        self._client = client

    @property
    def client(self) -> StripeClient:
        if self._client is None:
            if not settings.STRIPE_SECRET_KEY:
                raise ConfigurationMissingError("STRIPE_SECRET_KEY")
            self._client = StripeClient(settings.STRIPE_SECRET_KEY)
        return self._client

    async def check_payment(self, email: str) -> str:
        """
        Summarize the subscriptions of the customer with the given email.

        Returns:
            JSON with ``found`` and, when the customer exists, the customer
            name and up to five subscriptions
        """
        client = self.client

        customers = await client.v1.customers.list_async(params={"email": email, "limit": 1})
        if not customers.data:
            logger.info(f"No Stripe customer for {email}")
            return json.dumps(
                {"found": False, "message": "No customer found with this email."}
            )

        customer = customers.data[0]
        customer_name = _field(customer, "name") or _field(customer, "email")

        subscriptions = await client.v1.subscriptions.list_async(
            params={
                "customer": _field(customer, "id"),
                "status": "all",
                "limit": 5,
                "expand": ["data.items.data.price.product"],
            }
        )

        if not subscriptions.data:
            return json.dumps(
                {
                    "found": True,
                    "customer": customer_name,
                    "subscriptions": [],
                    "message": "Customer exists but has no subscriptions.",
                }
            )

        summaries = []
        for subscription in subscriptions.data:
            items = _field(_field(subscription, "items"), "data") or []
            item = items[0] if items else None
            price = _field(item, "price")
            product = _field(price, "product")

            period_end = _field(subscription, "current_period_end") or _field(
                item, "current_period_end"
            )

            summaries.append(
                {
                    "status": _field(subscription, "status"),
                    "product": _field(product, "name")
                    or _field(price, "nickname")
                    or _field(price, "id")
                    or "Unknown",
                    "current_period_end": _format_period_end(period_end),
                    "cancel_at_period_end": bool(
                        _field(subscription, "cancel_at_period_end", False)
                    ),
                }
            )

        logger.info(f"Found {len(summaries)} subscriptions for {email}")
        return json.dumps(
            {"found": True, "customer": customer_name, "subscriptions": summaries}
        )

    async def send_payment_link(
        self, product: str, tool_config: Optional[Mapping[str, Any]] = None
    ) -> str:
        """
        Resolve a payment link URL for a product.

        Configured ``paymentLinks`` are checked first and answer without any
        Stripe call. Otherwise the product's first active price is looked up
        and an active payment link tagged with that price is reused, or
        created when none exists.
        """
        payment_links = extract_payment_links(tool_config)
        if payment_links:
            url = match_payment_link(product, payment_links)
            if url:
                logger.info(f"Payment link for '{product}' resolved from config")
                return url

        client = self.client

        escaped = product.replace("\\", "\\\\").replace('"', '\\"')
        products = await client.v1.products.search_async(
            params={"query": f'name~"{escaped}"', "limit": 3}
        )
        if not products.data:
            return f'Product "{product}" not found.'

        found = products.data[0]
        prices = await client.v1.prices.list_async(
            params={"product": _field(found, "id"), "active": True, "limit": 1}
        )
        if not prices.data:
            return f'Product "{_field(found, "name")}" has no active prices.'

        price_id = _field(prices.data[0], "id")

        links = await client.v1.payment_links.list_async(params={"active": True, "limit": 100})
        for link in links.data:
            if _field(_field(link, "metadata"), "price_id") == price_id:
                logger.info(f"Reusing payment link for price {price_id}")
                return _field(link, "url")

        link = await client.v1.payment_links.create_async(
            params={
                "line_items": [{"price": price_id, "quantity": 1}],
                "metadata": {"price_id": price_id},
            }
        )
        logger.info(f"Created payment link for price {price_id}")
        return _field(link, "url")
