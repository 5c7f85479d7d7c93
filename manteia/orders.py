"""
Programmatic order operations for an outer API layer.

An order request is one of a closed set of tagged variants, selected by
``route``:

  route="hub"    place directly on the Hub, attributed to the caller
  route="spoke"  forward through the Spoke on ``origin_domain``

Each variant validates its own fields and knows how to submit itself, so the
desk never inspects request types at runtime.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .errors import InvalidRequestError
from .relay.hub import Hub, Order
from .relay.spoke import DispatchReceipt, Spoke

logger = logging.getLogger(__name__)


class _OrderFields(BaseModel):
    market_id: int = Field(ge=0)
    price: int = Field(ge=0)
    amount: int = Field(gt=0)
    is_buy: bool


class HubOrderRequest(_OrderFields):
    route: Literal["hub"] = "hub"

    async def submit(self, desk: "OrderDesk", caller: str) -> Order:
        return await desk.hub.place_order(
            self.market_id, self.price, self.amount, self.is_buy, caller=caller,
        )


class SpokeOrderRequest(_OrderFields):
    route: Literal["spoke"] = "spoke"
    origin_domain: int

    async def submit(self, desk: "OrderDesk", caller: str) -> DispatchReceipt:
        spoke = desk.spokes.get(self.origin_domain)
        if spoke is None:
            raise InvalidRequestError(f"no spoke configured for domain {self.origin_domain}")
        return await spoke.place_order(self.market_id, self.price, self.amount, self.is_buy)


OrderRequest = Annotated[Union[HubOrderRequest, SpokeOrderRequest], Field(discriminator="route")]

_request_adapter: TypeAdapter = TypeAdapter(OrderRequest)


def parse_order_request(data: Any) -> Union[HubOrderRequest, SpokeOrderRequest]:
    """Validate a raw request body into its variant."""
    if isinstance(data, (HubOrderRequest, SpokeOrderRequest)):
        return data
    try:
        return _request_adapter.validate_python(data)
    except PydanticValidationError as e:
        raise InvalidRequestError(str(e)) from e


class OrderDesk:
    """
    Facade over the Hub and its Spokes.

    Args:
        hub: destination-domain order book.
        spokes: origin domain id -> Spoke on that domain.
    """

    def __init__(self, hub: Hub, spokes: Optional[dict[int, Spoke]] = None):
        self.hub = hub
        self.spokes = dict(spokes or {})

    async def create_order(self, request: Any, caller: str) -> Union[Order, DispatchReceipt]:
        req = parse_order_request(request)
        result = await req.submit(self, caller)
        logger.info("create_order via %s for market %d", req.route, req.market_id)
        return result

    async def cancel_order(self, market_id: int, caller: str) -> Order:
        return await self.hub.cancel_order(market_id, caller=caller)

    def get_active_orders(
        self, market_id: Optional[int] = None, user: Optional[str] = None
    ) -> list[Order]:
        return self.hub.get_active_orders(market_id=market_id, user=user)

    async def resolve_market(self, market_id: int, outcome: int, caller: str) -> int:
        return await self.hub.resolve_market(market_id, outcome, caller=caller)
