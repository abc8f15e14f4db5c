from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field

from .abi import GRID_SIZE, ZERO_ADDRESS, coordinates_for

Coordinate = Annotated[int, Field(ge=0, lt=GRID_SIZE)]


class EventKind(str, Enum):
    BUY = "Buy"
    BATCH_BUY = "BatchBuy"
    TRANSFER = "Transfer"
    UPDATE = "Update"
    NAMED = "Named"
    OWNERSHIP_TRANSFERRED = "OwnershipTransferred"


class EventMeta(BaseModel):
    """Position of a log on chain. Fields are None when the raw log lacked them."""
    block_number: Optional[int] = None
    transaction_hash: Optional[str] = None
    log_index: Optional[int] = None
    event_name: str = "Unknown"


class ChainEvent(BaseModel):
    meta: EventMeta
    kind: ClassVar[Optional[EventKind]] = None

    def to_args(self) -> Dict[str, Any]:
        """Decoded arguments as a JSON-compatible dict for the events table"""
        return self.model_dump(mode='json', exclude={'meta'})


class BuyEvent(ChainEvent):
    kind: ClassVar[EventKind] = EventKind.BUY
    buyer: str
    x: Coordinate
    y: Coordinate


class BatchBuyEvent(ChainEvent):
    kind: ClassVar[EventKind] = EventKind.BATCH_BUY
    buyer: str
    coordinates: List[Tuple[Coordinate, Coordinate]]


class TransferEvent(ChainEvent):
    kind: ClassVar[EventKind] = EventKind.TRANSFER
    from_address: str
    to_address: str
    token_id: int = Field(ge=0, lt=GRID_SIZE * GRID_SIZE)

    @property
    def x(self) -> int:
        return coordinates_for(self.token_id)[0]

    @property
    def y(self) -> int:
        return coordinates_for(self.token_id)[1]

    @property
    def is_mint(self) -> bool:
        return self.from_address.lower() == ZERO_ADDRESS


class UpdateEvent(ChainEvent):
    kind: ClassVar[EventKind] = EventKind.UPDATE
    updater: str
    x: Coordinate
    y: Coordinate
    uri: str
    from_fallback: bool = False


class NamedEvent(ChainEvent):
    kind: ClassVar[EventKind] = EventKind.NAMED
    user: str
    name: Optional[str] = None


class OwnershipTransferredEvent(ChainEvent):
    kind: ClassVar[EventKind] = EventKind.OWNERSHIP_TRANSFERRED
    previous_owner: Optional[str] = None
    new_owner: Optional[str] = None


class UnknownEvent(ChainEvent):
    """Log whose topic0 matches no event in the ABI"""
    topic: Optional[str] = None


class DecodeFailure(ChainEvent):
    """Log for a known event whose payload could not be decoded"""
    event_kind: Optional[EventKind] = None
    error: str
    topics: List[str] = Field(default_factory=list)
    data: Optional[str] = None


TypedEvent = Union[
    BuyEvent,
    BatchBuyEvent,
    TransferEvent,
    UpdateEvent,
    NamedEvent,
    OwnershipTransferredEvent,
]

DecodedEvent = Union[TypedEvent, UnknownEvent, DecodeFailure]
