"""Contract ABI for the pixel map and helpers for matching logs to events"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from hexbytes import HexBytes
from web3 import Web3

logger = logging.getLogger(__name__)

GRID_SIZE = 100

ZERO_ADDRESS = '0x0000000000000000000000000000000000000000'


def _event(name: str, inputs: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {'type': 'event', 'name': name, 'anonymous': False, 'inputs': inputs}


def _input(name: str, type_: str, indexed: bool = False) -> Dict[str, Any]:
    return {'name': name, 'type': type_, 'indexed': indexed}


PIXELMAP_ABI: List[Dict[str, Any]] = [
    _event('Buy', [
        _input('buyer', 'address', indexed=True),
        _input('x', 'uint256'),
        _input('y', 'uint256'),
    ]),
    _event('BatchBuy', [
        _input('buyer', 'address', indexed=True),
        _input('x', 'uint256[]'),
        _input('y', 'uint256[]'),
    ]),
    _event('Transfer', [
        _input('from', 'address', indexed=True),
        _input('to', 'address', indexed=True),
        _input('tokenId', 'uint256', indexed=True),
    ]),
    _event('Update', [
        _input('owner', 'address', indexed=True),
        _input('x', 'uint256'),
        _input('y', 'uint256'),
        _input('uri', 'string'),
    ]),
    _event('Named', [
        _input('user', 'address', indexed=True),
        _input('name', 'string', indexed=True),
    ]),
    _event('OwnershipTransferred', [
        _input('previousOwner', 'address', indexed=True),
        _input('newOwner', 'address', indexed=True),
    ]),
    {
        'type': 'function',
        'name': 'tokenURI',
        'stateMutability': 'view',
        'inputs': [_input('tokenId', 'uint256')],
        'outputs': [{'name': '', 'type': 'string'}],
    },
]


def load_abi(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Load an ABI from a JSON file.

    Accepts either a bare ABI list or a build artifact with an ``abi`` key.
    """
    with open(path) as f:
        data = json.load(f)
    if isinstance(data, dict) and 'abi' in data:
        data = data['abi']
    if not isinstance(data, list):
        raise ValueError(f"No ABI list found in {path}")
    return data


def event_signature(event_abi: Dict[str, Any]) -> str:
    types = ','.join(item['type'] for item in event_abi.get('inputs', []))
    return f"{event_abi['name']}({types})"


def event_topic(event_abi: Dict[str, Any]) -> str:
    """keccak256 of the canonical event signature, as 0x-prefixed hex"""
    return normalize_topic(Web3.keccak(text=event_signature(event_abi)))


def normalize_topic(topic: Any) -> Optional[str]:
    """Return a topic as lowercase 0x-prefixed hex, or None if it can't be read"""
    if topic is None:
        return None
    try:
        return '0x' + bytes(HexBytes(topic)).hex()
    except (TypeError, ValueError):
        return None


def build_topic_map(abi: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Map topic0 hashes to event ABI entries"""
    topic_map = {}
    for item in abi:
        if item.get('type') != 'event' or item.get('anonymous'):
            continue
        item.setdefault('anonymous', False)
        topic_map[event_topic(item)] = item
    return topic_map


def token_id_for(x: int, y: int) -> int:
    return x * GRID_SIZE + y


def coordinates_for(token_id: int):
    return token_id // GRID_SIZE, token_id % GRID_SIZE
