"""
solana_client.py - Solana RPC adapter for the transaction guard

Implements LedgerPort on top of solana-py's AsyncClient (send, signature
status, slot) and a raw JSON-RPC simulateTransaction call over httpx, since
the guard needs `replaceRecentBlockhash` which AsyncClient does not expose.

Features:
1. Simulation with sig verification off and blockhash replacement
2. Send with explicit preflight / retry options
3. Confirmation polling with a real timeout
4. Error classification for send/confirm failures

Usage:
    rpc = SolanaRpcClient(rpc_url)
    raw = await rpc.simulate(tx)
    sig = await rpc.send(tx)
    await rpc.confirm(sig)
"""

from __future__ import annotations

import asyncio
import base64
from enum import Enum
from typing import Any, Dict, Optional

import httpx
from loguru import logger
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.signature import Signature
from solders.transaction_status import TransactionConfirmationStatus

from solguard.errors import ConfirmationFailure, SimulationError, TransportFailure
from solguard.ports.ledger import AnyTransaction, LedgerPort, RawSimulation


class TxFailureReason(Enum):
    """Why a submit or an on-chain confirmation failed."""
    BLOCKHASH_EXPIRED = "blockhash_expired"
    PREFLIGHT_FAILED = "preflight_failed"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    INSTRUCTION_ERROR = "instruction_error"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"


def classify_error(error_msg: str) -> TxFailureReason:
    """Classify a send error or a signature-status error string."""
    error_lower = error_msg.lower()

    if "blockhash" in error_lower:
        return TxFailureReason.BLOCKHASH_EXPIRED
    if "insufficient" in error_lower:
        return TxFailureReason.INSUFFICIENT_FUNDS
    if "instructionerror" in error_lower or "custom program error" in error_lower:
        return TxFailureReason.INSTRUCTION_ERROR
    if "simulation failed" in error_lower or "preflight" in error_lower:
        return TxFailureReason.PREFLIGHT_FAILED
    if "connect" in error_lower or "timed out" in error_lower or "network" in error_lower:
        return TxFailureReason.NETWORK_ERROR

    return TxFailureReason.UNKNOWN


_CONFIRMED_STATUSES = (
    TransactionConfirmationStatus.Confirmed,
    TransactionConfirmationStatus.Finalized,
)


class SolanaRpcClient(LedgerPort):
    """
    LedgerPort over a Solana JSON-RPC endpoint.

    Both underlying clients are created lazily and can be injected; the
    caller owns their lifetime when injected.
    """

    def __init__(
        self,
        rpc_url: str,
        confirm_timeout: float = 60.0,
        poll_interval: float = 0.5,
        http_timeout: float = 30.0,
        client: Optional[AsyncClient] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.rpc_url = rpc_url
        self.confirm_timeout = confirm_timeout
        self.poll_interval = poll_interval
        self.http_timeout = http_timeout

        self._client = client
        self._http = http_client
        self._request_id = 0

        logger.info(f"SOLANA_RPC | init | url={rpc_url} | confirm_timeout={confirm_timeout}s")

    async def _get_client(self) -> AsyncClient:
        """Get or create RPC client."""
        if self._client is None:
            self._client = AsyncClient(self.rpc_url)
        return self._client

    async def _get_http(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(timeout=self.http_timeout)
        return self._http

    async def close(self):
        """Close RPC clients."""
        if self._client:
            await self._client.close()
            self._client = None
        if self._http and not self._http.is_closed:
            await self._http.aclose()

    # =========================================================================
    # SIMULATION
    # =========================================================================

    async def simulate(
        self,
        tx: AnyTransaction,
        *,
        sig_verify: bool = False,
        replace_recent_blockhash: bool = True,
        commitment: str = "processed",
    ) -> RawSimulation:
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": "simulateTransaction",
            "params": [
                base64.b64encode(bytes(tx)).decode("ascii"),
                {
                    "encoding": "base64",
                    "sigVerify": sig_verify,
                    "replaceRecentBlockhash": replace_recent_blockhash,
                    "commitment": commitment,
                },
            ],
        }

        http = await self._get_http()
        try:
            resp = await http.post(self.rpc_url, json=payload)
            resp.raise_for_status()
            body: Dict[str, Any] = resp.json()
        except httpx.HTTPError as e:
            logger.error(f"TX_SIMULATE | transport_error | {type(e).__name__}: {e}")
            raise SimulationError(f"RPC request failed: {e}") from e
        except ValueError as e:
            raise SimulationError(f"RPC returned invalid JSON: {e}") from e

        # A JSON-RPC error means the node could not run the simulation at all
        # (unresolvable lookup table, malformed tx). Execution errors come back
        # inside result.value.err instead.
        if "error" in body:
            message = body["error"].get("message", "Unknown") if isinstance(body["error"], dict) else body["error"]
            logger.warning(f"TX_SIMULATE | rpc_error | {message}")
            raise SimulationError(f"RPC error: {message}")

        result = body.get("result")
        value = result.get("value") if isinstance(result, dict) else None
        if not isinstance(value, dict):
            logger.warning(f"TX_SIMULATE | malformed_response | keys={sorted(body)}")
            raise SimulationError("RPC response missing result.value")

        return RawSimulation(
            err=value.get("err"),
            logs=list(value.get("logs") or []),
            units_consumed=value.get("unitsConsumed"),
        )

    # =========================================================================
    # SEND / CONFIRM
    # =========================================================================

    async def send(
        self,
        tx: AnyTransaction,
        *,
        skip_preflight: bool = False,
        max_retries: Optional[int] = None,
    ) -> str:
        client = await self._get_client()
        opts = TxOpts(skip_preflight=skip_preflight, max_retries=max_retries, skip_confirmation=True)

        try:
            resp = await client.send_raw_transaction(bytes(tx), opts=opts)
        except (RPCException, SolanaRpcException, httpx.HTTPError) as e:
            error_msg = str(e)
            logger.error(f"TX_SEND | error | reason={classify_error(error_msg).value} | {error_msg}")
            raise TransportFailure(error_msg) from e

        signature = str(resp.value)
        logger.info(f"TX_SENT | sig={signature}")
        return signature

    async def get_signature_status(self, signature: str) -> Optional[dict]:
        """
        Get status of a transaction signature.

        Returns dict with confirmed / finalized / error / slot, or None if the
        signature is not known to the node yet.
        """
        client = await self._get_client()
        result = await client.get_signature_statuses([Signature.from_string(signature)])

        if not result.value or not result.value[0]:
            return None

        status = result.value[0]
        return {
            "confirmed": status.confirmation_status in _CONFIRMED_STATUSES,
            "finalized": status.confirmation_status == TransactionConfirmationStatus.Finalized,
            "error": str(status.err) if status.err else None,
            "slot": status.slot,
        }

    async def confirm(self, signature: str) -> None:
        """
        Wait for confirmation with timeout.

        Raises:
            ConfirmationFailure: timed out, status lookup failed, or tx errored on-chain
        """
        loop = asyncio.get_running_loop()
        start = loop.time()

        while True:
            elapsed = loop.time() - start

            if elapsed > self.confirm_timeout:
                logger.warning(f"TX_TIMEOUT | sig={signature} | elapsed={elapsed:.1f}s")
                raise ConfirmationFailure(f"confirmation_timeout:{elapsed:.1f}s", signature=signature)

            try:
                status = await self.get_signature_status(signature)
            except (RPCException, SolanaRpcException, httpx.HTTPError) as e:
                logger.error(f"SIG_STATUS | error | sig={signature[:16]}... | {e}")
                raise ConfirmationFailure(f"status lookup failed: {e}", signature=signature) from e

            if status is None:
                await asyncio.sleep(self.poll_interval)
                continue

            if status.get("error"):
                error_msg = status["error"]
                logger.error(
                    f"TX_FAILED | sig={signature} | reason={classify_error(error_msg).value} | error={error_msg}"
                )
                raise ConfirmationFailure(error_msg, signature=signature)

            if status.get("confirmed"):
                logger.info(f"TX_CONFIRMED | sig={signature} | finalized={status.get('finalized')}")
                return

            await asyncio.sleep(self.poll_interval)

    async def get_slot(self) -> int:
        client = await self._get_client()
        resp = await client.get_slot(Confirmed)
        return int(resp.value)


__all__ = ["SolanaRpcClient", "TxFailureReason", "classify_error"]
