"""Tool executor: dispatches parsed tool calls to their handlers."""

from typing import Any, Mapping, Optional

from persona_rag.tools.billing import StripeBillingTools
from persona_rag.tools.corpus import LexCorpusSearch
from persona_rag.tools.definitions import (
    CaseLawSearchCall,
    PaymentLinkCall,
    PaymentStatusCall,
    StatuteSearchCall,
    UnknownToolCall,
    parse_tool_call,
)
from persona_rag.utils.logger import get_logger

logger = get_logger(__name__)


class ToolExecutor:
    """
    Executes model tool calls and always answers with text.

    Handler failures (network errors, HTTP errors, Stripe errors, missing
    configuration, invalid arguments) are returned as descriptive strings so
    the tool-calling loop keeps running.
    """

    def __init__(
        self,
        billing: Optional[StripeBillingTools] = None,
        corpus: Optional[LexCorpusSearch] = None,
    ):
        self.billing = billing or StripeBillingTools()
        self.corpus = corpus or LexCorpusSearch()

    async def execute(
        self,
        tool_name: str,
        args: Any,
        tool_config: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """
        Execute one tool call.

        Args:
            tool_name: Function name requested by the model
            args: Call arguments (dict or JSON string)
            tool_config: Config of the persona's binding for this tool, if any

        Returns:
            Result text for the model

        Example:
            >>> await ToolExecutor().execute("send_fax", {}, None)
            'Unknown tool: send_fax'
        """
        try:
            call = parse_tool_call(tool_name, args)
        except Exception as e:
            logger.warning(f"Invalid arguments for tool {tool_name}: {e}")
            return f"Invalid arguments for tool {tool_name}: {e}"

        try:
            match call:
                case PaymentStatusCall(email=email):
                    result = await self.billing.check_payment(email)
                case PaymentLinkCall(product=product):
                    result = await self.billing.send_payment_link(product, tool_config)
                case CaseLawSearchCall(
                    query=query, tribunal=tribunal, date_from=date_from, date_to=date_to
                ):
                    result = await self.corpus.search_case_law(
                        query, tribunal, date_from, date_to
                    )
                case StatuteSearchCall(query=query):
                    result = await self.corpus.search_statutes(query)
                case UnknownToolCall(name=name):
                    logger.warning(f"Model requested unknown tool: {name}")
                    return f"Unknown tool: {name}"
        except Exception as e:
            logger.warning(f"Tool {tool_name} failed: {e}")
            return f"Error executing {tool_name}: {e}"

        logger.info(f"Executed tool {tool_name}")
        return result
