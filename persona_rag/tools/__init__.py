"""Callable tools offered to personas during the tool-calling loop."""

from persona_rag.tools.billing import StripeBillingTools
from persona_rag.tools.corpus import LexCorpusSearch
from persona_rag.tools.definitions import (
    TOOL_SPECS,
    CaseLawSearchCall,
    PaymentLinkCall,
    PaymentStatusCall,
    StatuteSearchCall,
    ToolCall,
    UnknownToolCall,
    get_definitions,
    parse_tool_call,
    tool_type_name,
)
from persona_rag.tools.executor import ToolExecutor

__all__ = [
    "TOOL_SPECS",
    "CaseLawSearchCall",
    "LexCorpusSearch",
    "PaymentLinkCall",
    "PaymentStatusCall",
    "StatuteSearchCall",
    "StripeBillingTools",
    "ToolCall",
    "ToolExecutor",
    "UnknownToolCall",
    "get_definitions",
    "parse_tool_call",
    "tool_type_name",
]
