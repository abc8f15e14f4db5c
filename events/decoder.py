"""Decode raw contract logs into typed pixel map events.

Decoding never raises. A log whose topic0 matches no known event becomes an
:class:`UnknownEvent`; a known event whose payload can't be read becomes a
:class:`DecodeFailure`. Update events get a second chance through a raw
decode of the log data, since some of them fail structured decoding.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from eth_abi import decode as abi_decode
from eth_utils import to_checksum_address
from hexbytes import HexBytes
from web3 import Web3
from web3._utils.events import get_event_data

from .abi import PIXELMAP_ABI, build_topic_map, normalize_topic
from .types import (
    BatchBuyEvent,
    BuyEvent,
    DecodedEvent,
    DecodeFailure,
    EventKind,
    EventMeta,
    NamedEvent,
    OwnershipTransferredEvent,
    TransferEvent,
    UnknownEvent,
    UpdateEvent,
)

logger = logging.getLogger(__name__)

UPDATE_DATA_TYPES = ['uint256', 'uint256', 'string']


def _field(source: Any, key: Any) -> Any:
    """Read ``source[key]``, returning None instead of raising"""
    if source is None:
        return None
    try:
        return source[key]
    except (KeyError, IndexError, TypeError, AttributeError):
        return None


def _to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        if isinstance(value, (bytes, bytearray)):
            return int.from_bytes(value, 'big')
        if isinstance(value, str):
            return int(value, 16) if value.startswith('0x') else int(value)
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_hex(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value if value.startswith('0x') else f"0x{value}"
    return normalize_topic(value)


def _to_address(value: Any) -> Optional[str]:
    if value is None:
        return None
    try:
        return to_checksum_address(value)
    except (TypeError, ValueError):
        return None


def decode_update_log(raw_log: Any) -> Tuple[str, int, int, str]:
    """Decode an Update log without the ABI machinery.

    The updater comes from the first indexed topic and ``(x, y, uri)`` from
    the data field.

    Raises:
        ValueError: If the log is missing topics or its data can't be decoded
    """
    topics = _field(raw_log, 'topics')
    owner_topic = _field(topics, 1)
    if owner_topic is None:
        raise ValueError("Update log has no indexed owner topic")

    owner = to_checksum_address(bytes(HexBytes(owner_topic))[-20:])
    data = bytes(HexBytes(_field(raw_log, 'data') or b''))
    try:
        x, y, uri = abi_decode(UPDATE_DATA_TYPES, data)
    except Exception as e:
        raise ValueError(f"Could not decode Update data: {e}") from e
    return owner, int(x), int(y), uri


class EventDecoder:
    """Turns raw logs from ``eth_getLogs`` into typed events."""

    def __init__(self, abi: Optional[List[Dict[str, Any]]] = None):
        self.abi = abi or PIXELMAP_ABI
        self.topic_map = build_topic_map(self.abi)
        self.codec = Web3().codec

        known = {item['name'] for item in self.topic_map.values()}
        missing = [kind.value for kind in EventKind if kind.value not in known]
        if missing:
            logger.warning(f"ABI has no definition for events: {', '.join(missing)}")

    def _meta(self, raw_log: Any, event_name: str = "Unknown") -> EventMeta:
        return EventMeta(
            block_number=_to_int(_field(raw_log, 'blockNumber')),
            transaction_hash=_to_hex(_field(raw_log, 'transactionHash')),
            log_index=_to_int(_field(raw_log, 'logIndex')),
            event_name=event_name,
        )

    def _failure(self, meta: EventMeta, raw_log: Any, kind: Optional[EventKind], error: Any) -> DecodeFailure:
        topics = _field(raw_log, 'topics') or []
        logger.error(
            f"Failed to decode {meta.event_name} event in tx {meta.transaction_hash} "
            f"(block {meta.block_number}, log {meta.log_index}): {error}"
        )
        return DecodeFailure(
            meta=meta,
            event_kind=kind,
            error=str(error),
            topics=[t for t in (normalize_topic(topic) for topic in topics) if t],
            data=_to_hex(_field(raw_log, 'data')),
        )

    def _values(self, event_abi: Dict[str, Any], raw_log: Any) -> Tuple[List[Any], Optional[Exception]]:
        """Decoded arguments in ABI input order, None where unavailable"""
        names = [item['name'] for item in event_abi.get('inputs', [])]
        try:
            event_data = get_event_data(self.codec, event_abi, raw_log)
        except Exception as e:
            return [None] * len(names), e
        args = _field(event_data, 'args')
        return [_field(args, name) for name in names], None

    def decode(self, raw_log: Any) -> DecodedEvent:
        """Decode one raw log.

        Args:
            raw_log: Log entry as returned by ``w3.eth.get_logs``

        Returns:
            A typed event, an UnknownEvent, or a DecodeFailure
        """
        topics = _field(raw_log, 'topics') or []
        topic0 = normalize_topic(_field(topics, 0))
        event_abi = self.topic_map.get(topic0) if topic0 else None

        if event_abi is None:
            meta = self._meta(raw_log)
            logger.info(
                f"Skipping unrecognized event with topic {topic0} in tx {meta.transaction_hash}"
            )
            return UnknownEvent(meta=meta, topic=topic0)

        name = event_abi['name']
        meta = self._meta(raw_log, name)
        try:
            kind = EventKind(name)
        except ValueError:
            logger.info(f"Skipping {name} event in tx {meta.transaction_hash}, no handler for it")
            return UnknownEvent(meta=meta, topic=topic0)

        values, error = self._values(event_abi, raw_log)

        if kind is EventKind.UPDATE:
            return self._decode_update(meta, raw_log, values, error)

        if error is not None:
            return self._failure(meta, raw_log, kind, error)

        try:
            if kind is EventKind.BUY:
                buyer, x, y = values[:3]
                return BuyEvent(meta=meta, buyer=_to_address(buyer), x=x, y=y)

            if kind is EventKind.BATCH_BUY:
                buyer, xs, ys = values[:3]
                if xs is None or ys is None or len(xs) != len(ys):
                    raise ValueError("BatchBuy coordinate arrays missing or of different length")
                return BatchBuyEvent(meta=meta, buyer=_to_address(buyer), coordinates=list(zip(xs, ys)))

            if kind is EventKind.TRANSFER:
                from_address, to_address, token_id = values[:3]
                return TransferEvent(
                    meta=meta,
                    from_address=_to_address(from_address),
                    to_address=_to_address(to_address),
                    token_id=_to_int(token_id),
                )

            if kind is EventKind.NAMED:
                user, name_value = values[:2]
                return NamedEvent(meta=meta, user=_to_address(user) or user, name=self._name(meta, name_value))

            if kind is EventKind.OWNERSHIP_TRANSFERRED:
                previous_owner, new_owner = values[:2]
                return OwnershipTransferredEvent(
                    meta=meta,
                    previous_owner=_to_address(previous_owner),
                    new_owner=_to_address(new_owner),
                )
        except Exception as e:
            return self._failure(meta, raw_log, kind, e)

        return UnknownEvent(meta=meta, topic=topic0)

    def _decode_update(self, meta: EventMeta, raw_log: Any, values: List[Any],
                       error: Optional[Exception]) -> DecodedEvent:
        if error is None and None not in values[:4]:
            owner, x, y, uri = values[:4]
            try:
                return UpdateEvent(meta=meta, updater=_to_address(owner), x=x, y=y, uri=uri)
            except Exception as e:
                error = e

        logger.debug(
            f"Structured decode of Update in tx {meta.transaction_hash} failed ({error}), "
            "trying raw log data"
        )
        try:
            owner, x, y, uri = decode_update_log(raw_log)
            return UpdateEvent(meta=meta, updater=owner, x=x, y=y, uri=uri, from_fallback=True)
        except Exception as e:
            return self._failure(meta, raw_log, EventKind.UPDATE, f"{error}; fallback: {e}")

    def _name(self, meta: EventMeta, value: Any) -> Optional[str]:
        # Indexed strings only reach the log as their keccak hash
        if isinstance(value, str):
            return value
        if isinstance(value, (bytes, bytearray)):
            hashed = '0x' + bytes(value).hex()
            logger.warning(
                f"Named event in tx {meta.transaction_hash} carries only the name hash {hashed}"
            )
            return hashed
        logger.warning(f"Named event in tx {meta.transaction_hash} has no readable name")
        return None
