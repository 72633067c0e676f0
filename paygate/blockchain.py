# paygate/blockchain.py
# Ledger access over EVM JSON-RPC: read-only queries for the payment gate and
# balance action, plus the single signing wallet used for outbound transfers.

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Optional, Protocol

from aiohttp import ClientTimeout
from eth_account import Account
from web3 import AsyncWeb3, Web3
from web3.exceptions import ProviderConnectionError, TransactionNotFound, Web3Exception

from paygate.errors import BroadcastUncertain, NonceConflictError, TransferNotSent

logger = logging.getLogger(__name__)

_TX_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")

# Node error fragments that mean "your nonce lost a race", not "the node is down".
_NONCE_CONFLICT_MARKERS = (
    "nonce too low",
    "nonce has already been used",
    "replacement transaction underpriced",
    "already known",
)


@dataclass(frozen=True)
class TransactionRecord:
    hash: str
    sender: str
    recipient: Optional[str]  # None for contract creation
    block_number: Optional[int] = None  # None while pending
    status: Optional[int] = None  # 1 success / 0 reverted / None while pending or pre-Byzantium

    @property
    def mined(self) -> bool:
        # receipts from before Byzantium carry no status: mined, but not provably successful
        return self.block_number is not None

    @property
    def succeeded(self) -> bool:
        return self.status == 1


class LedgerQuery(Protocol):
    async def get_transaction(self, ref: str) -> Optional[TransactionRecord]: ...

    async def get_balance(self, address: str) -> int: ...

    async def block_number(self) -> int: ...


class LedgerMutation(Protocol):
    @property
    def address(self) -> str: ...

    async def send_transaction(self, to: str, value_wei: int) -> str: ...


def make_web3(rpc_url: str, *, timeout: float = 10.0) -> AsyncWeb3:
    return AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": ClientTimeout(total=timeout)}))


class Web3Ledger:
    """LedgerQuery backed by a JSON-RPC node."""

    def __init__(self, w3: AsyncWeb3):
        self.w3 = w3

    async def get_transaction(self, ref: str) -> Optional[TransactionRecord]:
        # A string that cannot be a transaction hash names nothing on the chain.
        if not _TX_HASH_RE.match(ref):
            return None

        try:
            tx = await self.w3.eth.get_transaction(ref)
        except TransactionNotFound:
            return None

        block_number = None
        status = None
        if tx.get("blockNumber") is not None:
            try:
                receipt = await self.w3.eth.get_transaction_receipt(ref)
            except TransactionNotFound:
                # included but receipt not indexed yet: keep polling
                receipt = None
            if receipt is not None:
                block_number = receipt["blockNumber"]
                status = receipt.get("status")

        return TransactionRecord(
            hash=Web3.to_hex(tx["hash"]),
            sender=tx["from"],
            recipient=tx.get("to"),
            block_number=block_number,
            status=status,
        )

    async def get_balance(self, address: str) -> int:
        return int(await self.w3.eth.get_balance(Web3.to_checksum_address(address)))

    async def block_number(self) -> int:
        return int(await self.w3.eth.block_number)


class WalletSigner:
    """The service wallet. One instance per process; holds the key in memory only."""

    def __init__(self, w3: AsyncWeb3, private_key: str):
        self.w3 = w3
        self._account = Account.from_key(private_key)
        self._lock = asyncio.Lock()
        self._chain_id: int | None = None

    def __repr__(self) -> str:
        return f"WalletSigner(address={self.address})"

    @property
    def address(self) -> str:
        return self._account.address

    async def _get_chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = int(await self.w3.eth.chain_id)
        return self._chain_id

    async def _fee_fields(self) -> dict:
        latest = await self.w3.eth.get_block("latest")
        base_fee = latest.get("baseFeePerGas")
        if base_fee is None:
            return {"gasPrice": await self.w3.eth.gas_price}
        tip = await self.w3.eth.max_priority_fee
        return {"maxFeePerGas": base_fee * 2 + tip, "maxPriorityFeePerGas": tip}

    async def send_transaction(self, to: str, value_wei: int) -> str:
        """Sign and broadcast a native transfer; returns the hash without waiting for mining."""
        to = Web3.to_checksum_address(to)

        # Nonce lookup and broadcast must not interleave between requests.
        async with self._lock:
            try:
                tx = {
                    "to": to,
                    "value": int(value_wei),
                    "nonce": await self.w3.eth.get_transaction_count(self.address, "pending"),
                    "chainId": await self._get_chain_id(),
                    "gas": await self.w3.eth.estimate_gas({"from": self.address, "to": to, "value": int(value_wei)}),
                }
                tx.update(await self._fee_fields())
                signed = self._account.sign_transaction(tx)
            except Exception as e:
                logger.warning("Transfer to %s failed before broadcast: %s", to, e)
                raise TransferNotSent() from e

            tx_hash = Web3.to_hex(signed.hash)
            try:
                await self.w3.eth.send_raw_transaction(signed.raw_transaction)
            except ProviderConnectionError as e:
                logger.error("Broadcast of %s to %s lost in transit: %s", tx_hash, to, e)
                raise BroadcastUncertain(tx_hash) from e
            except (Web3Exception, ValueError) as e:
                # the node answered, and it said no
                text = str(e).lower()
                if any(marker in text for marker in _NONCE_CONFLICT_MARKERS):
                    logger.warning("Transfer to %s hit a nonce conflict: %s", to, e)
                    raise NonceConflictError() from e
                logger.warning("Node rejected transfer %s to %s: %s", tx_hash, to, e)
                raise TransferNotSent() from e
            except Exception as e:
                logger.error("Broadcast of %s to %s lost in transit: %s", tx_hash, to, e)
                raise BroadcastUncertain(tx_hash) from e

        return tx_hash
