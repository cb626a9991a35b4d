"""Tool registry: callable-tool schemas and parsing of model tool calls."""

import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Type, Union

from langchain_core.utils.function_calling import convert_to_openai_tool
from pydantic import BaseModel, Field

from persona_rag.db.models import ToolType


class PaymentStatusCall(BaseModel):
    """Check a student's subscription and payment status in Stripe by email."""

    email: str = Field(..., description="Student email address")


class PaymentLinkCall(BaseModel):
    """Get the payment link for a specific course or product."""

    product: str = Field(..., description="Name or identifier of the course/product")


class CaseLawSearchCall(BaseModel):
    """
    Search case law of the Portuguese courts (STA, TCAN, TCAS, TC).
    Use it when the answer should be backed by court rulings.
    """

    query: str = Field(..., description="Description of the legal question to search")
    tribunal: Optional[str] = Field(
        None, description="Court filter: STA, TCAN, TCAS, TC, TRL, TRP, TRC"
    )
    date_from: Optional[str] = Field(None, description="Start date, YYYY-MM-DD")
    date_to: Optional[str] = Field(None, description="End date, YYYY-MM-DD")


class StatuteSearchCall(BaseModel):
    """
    Search Portuguese legislation (CPTA, CPA, CPPT, etc.).
    Use it to find articles to cite inline in the answer.
    """

    query: str = Field(..., description="Description of the rule or subject to search")


class UnknownToolCall(BaseModel):
    """A call to a function name no registered tool answers to."""

    name: str
    args: Dict[str, Any] = Field(default_factory=dict)


ToolCall = Union[
    PaymentStatusCall,
    PaymentLinkCall,
    CaseLawSearchCall,
    StatuteSearchCall,
    UnknownToolCall,
]


@dataclass(frozen=True)
class ToolSpec:
    tool_type: ToolType
    name: str
    call_model: Type[BaseModel]


TOOL_SPECS: Dict[ToolType, ToolSpec] = {
    spec.tool_type: spec
    for spec in (
        ToolSpec(ToolType.STRIPE_CHECK_PAYMENT, "stripe_check_payment", PaymentStatusCall),
        ToolSpec(ToolType.STRIPE_SEND_PAYMENT_LINK, "stripe_send_payment_link", PaymentLinkCall),
        ToolSpec(ToolType.TRIBUNAIS_SEARCH, "tribunais_search", CaseLawSearchCall),
        ToolSpec(ToolType.LEGISLACAO_SEARCH, "legislacao_search", StatuteSearchCall),
    )
}

_SPECS_BY_NAME = {spec.name: spec for spec in TOOL_SPECS.values()}


def tool_type_name(tool_type: ToolType) -> str:
    """
    Canonical function name the model uses for a tool type.

    Example:
        >>> tool_type_name(ToolType.TRIBUNAIS_SEARCH)
        'tribunais_search'
    """
    spec = TOOL_SPECS.get(tool_type)
    return spec.name if spec else ToolType(tool_type).value.lower()


def get_definitions(tool_types: Iterable[ToolType]) -> List[Dict[str, Any]]:
    """
    OpenAI function-tool schemas for the given tool types, in order.

    The description and JSON parameter schema come from each tool's
    argument model; the function name is the canonical tool name.
    """
    definitions = []
    for tool_type in tool_types:
        spec = TOOL_SPECS.get(tool_type)
        if spec is None:
            continue
        definition = convert_to_openai_tool(spec.call_model)
        definition["function"]["name"] = spec.name
        definitions.append(definition)
    return definitions


def parse_tool_call(name: str, args: Union[Mapping[str, Any], str, None]) -> ToolCall:
    """
    Turn a model tool call into its typed variant.

    Args:
        name: Function name requested by the model
        args: Parsed arguments (a JSON string is decoded first)

    Returns:
        The matching call variant, or ``UnknownToolCall`` for unregistered names

    Raises:
        pydantic.ValidationError: If the arguments do not fit the tool's schema
        json.JSONDecodeError: If ``args`` is a malformed JSON string
    """
    if isinstance(args, str):
        args = json.loads(args) if args.strip() else {}
    args = dict(args or {})

    spec = _SPECS_BY_NAME.get(name)
    if spec is None:
        return UnknownToolCall(name=name, args=args)

    return spec.call_model.model_validate(args)
