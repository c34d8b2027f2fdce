"""
Chain Service - Reads settlement state from the Conditional Token Framework contract
"""
import asyncio
from typing import Tuple

from web3 import Web3

from core.config import Settings


CTF_ADDRESS = "0x4D97DCd97eC945f40cF65F87097ACe5EA0476045"

CTF_ABI = [
    {
        "inputs": [{"internalType": "bytes32", "name": "", "type": "bytes32"}],
        "name": "payoutDenominator",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "bytes32", "name": "", "type": "bytes32"},
            {"internalType": "uint256", "name": "", "type": "uint256"},
        ],
        "name": "payoutNumerators",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]


def to_bytes32(condition_id: str) -> bytes:
    clean = condition_id[2:] if condition_id.startswith("0x") else condition_id
    raw = bytes.fromhex(clean)
    if len(raw) > 32:
        raise ValueError(f"condition id longer than 32 bytes: {condition_id}")
    return raw.rjust(32, b"\x00")


class ChainReader:
    """
    Read-only access to payoutDenominator / payoutNumerators. web3 calls are
    blocking, so they run in the default executor.
    """

    def __init__(self, rpc_url: str, ctf_address: str = CTF_ADDRESS, timeout: float = 30.0):
        self.w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        self.ctf = self.w3.eth.contract(address=Web3.to_checksum_address(ctf_address), abi=CTF_ABI)

    @classmethod
    def from_settings(cls, settings: Settings) -> 'ChainReader':
        return cls(settings.polygon_rpc_url, settings.ctf_address, settings.http_timeout_seconds)

    async def _call(self, fn):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn)

    async def payout_denominator(self, condition_id: str) -> int:
        cid = to_bytes32(condition_id)
        return await self._call(lambda: self.ctf.functions.payoutDenominator(cid).call())

    async def payout_numerators(self, condition_id: str) -> Tuple[int, int]:
        """YES (index 0) and NO (index 1) numerators, fetched in parallel."""
        cid = to_bytes32(condition_id)
        yes, no = await asyncio.gather(
            self._call(lambda: self.ctf.functions.payoutNumerators(cid, 0).call()),
            self._call(lambda: self.ctf.functions.payoutNumerators(cid, 1).call()),
        )
        return int(yes), int(no)
