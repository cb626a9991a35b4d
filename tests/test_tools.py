"""Tests for tool schemas, billing and legal search tools, and the executor."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from pydantic import ValidationError

from persona_rag.config import settings
from persona_rag.db.models import ToolType
from persona_rag.tools import (
    CaseLawSearchCall,
    LexCorpusSearch,
    StripeBillingTools,
    ToolExecutor,
    UnknownToolCall,
    get_definitions,
    parse_tool_call,
    tool_type_name,
)
from persona_rag.tools.billing import match_payment_link, normalize_product_key


def _stripe_client() -> MagicMock:
    client = MagicMock()
    for service in ("customers", "subscriptions", "products", "prices", "payment_links"):
        resource = getattr(client.v1, service)
        resource.list_async = AsyncMock(return_value=SimpleNamespace(data=[]))
        resource.search_async = AsyncMock(return_value=SimpleNamespace(data=[]))
        resource.create_async = AsyncMock()
    return client


def _corpus(handler) -> LexCorpusSearch:
    return LexCorpusSearch(
        base_url="https://lex.example/", timeout=5, transport=httpx.MockTransport(handler)
    )


class TestDefinitions:
    """Tests for the tool registry."""

    def test_canonical_names(self):
        """Test the function names exposed to the model."""
        assert tool_type_name(ToolType.STRIPE_CHECK_PAYMENT) == "stripe_check_payment"
        assert tool_type_name(ToolType.LEGISLACAO_SEARCH) == "legislacao_search"

    def test_definitions_follow_requested_order(self):
        """Test that schemas are produced in order with their parameters."""
        definitions = get_definitions(
            [ToolType.TRIBUNAIS_SEARCH, ToolType.STRIPE_SEND_PAYMENT_LINK]
        )

        names = [d["function"]["name"] for d in definitions]
        assert names == ["tribunais_search", "stripe_send_payment_link"]
        params = definitions[0]["function"]["parameters"]
        assert set(params["properties"]) == {"query", "tribunal", "date_from", "date_to"}
        assert params["required"] == ["query"]
        assert definitions[0]["type"] == "function"

    def test_parse_known_tool_from_json_string(self):
        """Test that JSON-encoded arguments are decoded into the typed call."""
        call = parse_tool_call("tribunais_search", '{"query": "prazo", "tribunal": "STA"}')

        assert isinstance(call, CaseLawSearchCall)
        assert call.tribunal == "STA"
        assert call.date_from is None

    def test_parse_unknown_tool(self):
        """Test that unregistered names become UnknownToolCall."""
        call = parse_tool_call("send_fax", {"to": "123"})

        assert call == UnknownToolCall(name="send_fax", args={"to": "123"})

    def test_parse_missing_required_argument(self):
        """Test that schema violations raise."""
        with pytest.raises(ValidationError):
            parse_tool_call("stripe_send_payment_link", {})


class TestPaymentLinkMatching:
    """Tests for payment-link key normalization and matching."""

    def test_normalize_strips_accents_and_separators(self):
        """Test accent, case and separator normalization."""
        assert normalize_product_key(" Curso  Básico-Avançado ") == "curso_basico_avancado"

    def test_match_both_directions(self):
        """Test that either side may contain the other."""
        links = {"curso_basico": "https://pay/x", "mentoria": "https://pay/m"}

        assert match_payment_link("Curso Básico", links) == "https://pay/x"
        assert match_payment_link("basico", links) == "https://pay/x"
        assert match_payment_link("Mentoria Premium", links) == "https://pay/m"
        assert match_payment_link("Workshop", links) is None

    def test_blank_product_never_matches(self):
        """Test that an empty product name matches nothing."""
        assert match_payment_link("   ", {"curso": "https://pay/x"}) is None


class TestStripeBillingTools:
    """Tests for the Stripe billing tools with a mocked client."""

    async def test_configured_link_skips_stripe(self):
        """Test that a configured payment link answers without any Stripe call."""
        client = _stripe_client()
        billing = StripeBillingTools(client)

        url = await billing.send_payment_link(
            "Curso Básico", {"paymentLinks": {"curso_basico": "https://pay/x"}}
        )

        assert url == "https://pay/x"
        client.v1.products.search_async.assert_not_called()
        client.v1.payment_links.create_async.assert_not_called()

    async def test_product_not_found(self):
        """Test the message for an unknown product."""
        billing = StripeBillingTools(_stripe_client())

        assert await billing.send_payment_link("Workshop") == 'Product "Workshop" not found.'

    async def test_reuses_link_tagged_with_price(self):
        """Test that an active link with matching price metadata is reused."""
        client = _stripe_client()
        client.v1.products.search_async.return_value = SimpleNamespace(
            data=[{"id": "prod_1", "name": "Workshop"}]
        )
        client.v1.prices.list_async.return_value = SimpleNamespace(data=[{"id": "price_1"}])
        client.v1.payment_links.list_async.return_value = SimpleNamespace(
            data=[
                {"url": "https://buy/other", "metadata": {"price_id": "price_9"}},
                {"url": "https://buy/ws", "metadata": {"price_id": "price_1"}},
            ]
        )

        url = await StripeBillingTools(client).send_payment_link("Workshop")

        assert url == "https://buy/ws"
        client.v1.payment_links.create_async.assert_not_called()

    async def test_creates_link_when_none_exists(self):
        """Test that a new link is created and tagged with the price id."""
        client = _stripe_client()
        client.v1.products.search_async.return_value = SimpleNamespace(
            data=[{"id": "prod_1", "name": "Workshop"}]
        )
        client.v1.prices.list_async.return_value = SimpleNamespace(data=[{"id": "price_1"}])
        client.v1.payment_links.create_async.return_value = {"url": "https://buy/new"}

        url = await StripeBillingTools(client).send_payment_link("Workshop")

        assert url == "https://buy/new"
        params = client.v1.payment_links.create_async.call_args.kwargs["params"]
        assert params["metadata"] == {"price_id": "price_1"}
        assert params["line_items"] == [{"price": "price_1", "quantity": 1}]

    async def test_product_without_active_price(self):
        """Test the message for a product with no active price."""
        client = _stripe_client()
        client.v1.products.search_async.return_value = SimpleNamespace(
            data=[{"id": "prod_1", "name": "Workshop"}]
        )

        result = await StripeBillingTools(client).send_payment_link("work")

        assert result == 'Product "Workshop" has no active prices.'

    async def test_check_payment_unknown_customer(self):
        """Test that a missing customer reports found=false."""
        billing = StripeBillingTools(_stripe_client())

        result = json.loads(await billing.check_payment("nobody@example.com"))

        assert result["found"] is False

    async def test_check_payment_summarizes_subscriptions(self):
        """Test the subscription summary fields."""
        client = _stripe_client()
        client.v1.customers.list_async.return_value = SimpleNamespace(
            data=[{"id": "cus_1", "name": "Ana", "email": "ana@example.com"}]
        )
        client.v1.subscriptions.list_async.return_value = SimpleNamespace(
            data=[
                {
                    "status": "active",
                    "cancel_at_period_end": False,
                    "items": {
                        "data": [
                            {
                                "current_period_end": 1735689600,
                                "price": {"id": "price_1", "product": {"name": "Curso"}},
                            }
                        ]
                    },
                }
            ]
        )

        result = json.loads(await StripeBillingTools(client).check_payment("ana@example.com"))

        assert result["found"] is True
        assert result["customer"] == "Ana"
        assert result["subscriptions"] == [
            {
                "status": "active",
                "product": "Curso",
                "current_period_end": "01/01/2025",
                "cancel_at_period_end": False,
            }
        ]

    def test_missing_secret_key(self, monkeypatch):
        """Test that a missing key surfaces when the client is needed."""
        from persona_rag.exceptions import ConfigurationMissingError

        monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", None)

        with pytest.raises(ConfigurationMissingError):
            StripeBillingTools().client


class TestLexCorpusSearch:
    """Tests for the legal corpus client with a mock transport."""

    async def test_case_law_request_and_truncation(self):
        """Test request body, summary truncation and similarity formatting."""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(
                200,
                json={
                    "data": {
                        "results": [
                            {
                                "tribunal": "STA",
                                "processo": "01/24",
                                "data_acordao": "2024-01-10",
                                "relator": "Silva",
                                "sumario": "s" * 1000,
                                "url": "https://lex/1",
                                "similarity": 0.87654,
                            }
                        ]
                    }
                },
            )

        result = json.loads(
            await _corpus(handler).search_case_law("prazo", tribunal="STA", date_from="2024-01-01")
        )

        assert str(requests[0].url) == "https://lex.example/api/search"
        body = json.loads(requests[0].content)
        assert body == {
            "query": "prazo",
            "contentType": "jurisprudencia",
            "topK": 5,
            "tribunal": "STA",
            "dateFrom": "2024-01-01",
        }
        assert len(result[0]["sumario"]) == 400
        assert result[0]["data"] == "2024-01-10"
        assert result[0]["similarity"] == "0.88"

    async def test_statutes_empty_results(self):
        """Test the message when nothing matches."""
        corpus = _corpus(lambda request: httpx.Response(200, json={"data": {"results": []}}))

        assert await corpus.search_statutes("cpta") == "No relevant legislation found."

    async def test_statute_content_truncated(self):
        """Test that statute content is cut to 600 characters."""
        corpus = _corpus(
            lambda request: httpx.Response(
                200,
                json={"data": {"results": [{"title": "CPTA art. 58", "content": "c" * 900}]}},
            )
        )

        result = json.loads(await corpus.search_statutes("prazo de impugnação"))

        assert result[0]["titulo"] == "CPTA art. 58"
        assert len(result[0]["conteudo"]) == 600

    async def test_http_error_status(self):
        """Test that a non-2xx response is reported with its status."""
        corpus = _corpus(lambda request: httpx.Response(503))

        assert await corpus.search_case_law("prazo") == "Error searching case law: 503"


class TestToolExecutor:
    """Tests for tool dispatch."""

    async def test_unknown_tool(self):
        """Test the unknown tool message."""
        executor = ToolExecutor(StripeBillingTools(_stripe_client()), _corpus(None))

        assert await executor.execute("send_fax", {}) == "Unknown tool: send_fax"

    async def test_invalid_arguments(self):
        """Test that invalid arguments become a message instead of an error."""
        executor = ToolExecutor(StripeBillingTools(_stripe_client()), _corpus(None))

        result = await executor.execute("stripe_check_payment", {"mail": "x"})

        assert result.startswith("Invalid arguments for tool stripe_check_payment")

    async def test_dispatch_passes_tool_config(self):
        """Test that the binding config reaches the payment-link handler."""
        billing = MagicMock()
        billing.send_payment_link = AsyncMock(return_value="https://pay/x")
        executor = ToolExecutor(billing, _corpus(None))

        result = await executor.execute(
            "stripe_send_payment_link", '{"product": "Curso"}', {"paymentLinks": {}}
        )

        assert result == "https://pay/x"
        billing.send_payment_link.assert_awaited_once_with("Curso", {"paymentLinks": {}})

    async def test_missing_corpus_url_is_reported(self, monkeypatch):
        """Test that configuration errors are returned as text."""
        monkeypatch.setattr(settings, "LEX_CORPUS_URL", None)
        executor = ToolExecutor(StripeBillingTools(_stripe_client()), LexCorpusSearch())

        result = await executor.execute("legislacao_search", {"query": "cpta"})

        assert result == "Error executing legislacao_search: LEX_CORPUS_URL is not configured"

    async def test_handler_exception_is_reported(self):
        """Test that network failures are returned as text."""

        def handler(request):
            raise httpx.ConnectError("connection refused")

        executor = ToolExecutor(StripeBillingTools(_stripe_client()), _corpus(handler))

        result = await executor.execute("tribunais_search", {"query": "prazo"})

        assert result.startswith("Error executing tribunais_search:")
