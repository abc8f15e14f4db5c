"""Pixel map contract events: ABI, decoding and state mutation"""
from .abi import GRID_SIZE, PIXELMAP_ABI, ZERO_ADDRESS, coordinates_for, load_abi, token_id_for
from .decoder import EventDecoder, decode_update_log
from .dispatch import process_event
from .types import (
    BatchBuyEvent,
    BuyEvent,
    ChainEvent,
    DecodedEvent,
    DecodeFailure,
    EventKind,
    EventMeta,
    NamedEvent,
    OwnershipTransferredEvent,
    TransferEvent,
    TypedEvent,
    UnknownEvent,
    UpdateEvent,
)

__all__ = [
    'GRID_SIZE',
    'PIXELMAP_ABI',
    'ZERO_ADDRESS',
    'coordinates_for',
    'load_abi',
    'token_id_for',
    'EventDecoder',
    'decode_update_log',
    'process_event',
    'BatchBuyEvent',
    'BuyEvent',
    'ChainEvent',
    'DecodedEvent',
    'DecodeFailure',
    'EventKind',
    'EventMeta',
    'NamedEvent',
    'OwnershipTransferredEvent',
    'TransferEvent',
    'TypedEvent',
    'UnknownEvent',
    'UpdateEvent',
]
