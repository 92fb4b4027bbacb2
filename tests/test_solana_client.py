import base64
import json
from types import SimpleNamespace

import httpx
import pytest
from solana.rpc.core import RPCException
from solders.signature import Signature
from solders.transaction_status import TransactionConfirmationStatus

from conftest import versioned_tx
from solguard.engines.execution.solana_client import SolanaRpcClient, TxFailureReason, classify_error
from solguard.engines.execution.transaction_guard import TransactionGuard
from solguard.errors import ConfirmationFailure, SimulationError, TransportFailure

RPC = "https://rpc.test"
SIG = str(Signature.default())


class StubRpc:
    """Duck-typed stand-in for solana.rpc.async_api.AsyncClient."""

    def __init__(self, statuses=(), send_error=None, slot=123):
        self.statuses = list(statuses)
        self.send_error = send_error
        self.slot = slot
        self.sent = []

    async def send_raw_transaction(self, txn, opts=None):
        if self.send_error:
            raise self.send_error
        self.sent.append((txn, opts))
        return SimpleNamespace(value=Signature.default())

    async def get_signature_statuses(self, signatures):
        status = self.statuses.pop(0) if self.statuses else None
        return SimpleNamespace(value=[status])

    async def get_slot(self, commitment=None):
        return SimpleNamespace(value=self.slot)

    async def close(self):
        pass


def status(conf=TransactionConfirmationStatus.Confirmed, err=None):
    return SimpleNamespace(confirmation_status=conf, err=err, slot=42)


def rpc_with(handler, **kwargs):
    return SolanaRpcClient(RPC, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)), **kwargs)


@pytest.mark.anyio
async def test_simulate_request_and_result(payer):
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "jsonrpc": "2.0",
                "id": 1,
                "result": {
                    "context": {"slot": 1},
                    "value": {"err": None, "logs": ["Program log: hi"], "unitsConsumed": 4200},
                },
            },
        )

    tx = versioned_tx(payer)
    raw = await rpc_with(handler).simulate(tx)

    body = seen["body"]
    assert body["method"] == "simulateTransaction"
    assert base64.b64decode(body["params"][0]) == bytes(tx)
    assert body["params"][1] == {
        "encoding": "base64",
        "sigVerify": False,
        "replaceRecentBlockhash": True,
        "commitment": "processed",
    }
    assert raw.err is None
    assert raw.logs == ["Program log: hi"]
    assert raw.units_consumed == 4200


@pytest.mark.anyio
async def test_simulate_execution_error_is_data(payer):
    def handler(request):
        value = {"err": {"InstructionError": [0, {"Custom": 1}]}, "logs": None, "unitsConsumed": 10}
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": {"value": value}})

    raw = await rpc_with(handler).simulate(versioned_tx(payer))
    assert raw.err == {"InstructionError": [0, {"Custom": 1}]}
    assert raw.logs == []


@pytest.mark.anyio
async def test_simulate_rpc_error_raises(payer):
    def handler(request):
        return httpx.Response(
            200,
            json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "invalid lookup table index"}},
        )

    with pytest.raises(SimulationError, match="invalid lookup table index"):
        await rpc_with(handler).simulate(versioned_tx(payer))


@pytest.mark.anyio
async def test_simulate_transport_error_raises(payer):
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(SimulationError):
        await rpc_with(handler).simulate(versioned_tx(payer))


@pytest.mark.parametrize(
    "body",
    [
        {"jsonrpc": "2.0", "id": 1, "result": None},
        {"jsonrpc": "2.0", "id": 1},
        {"jsonrpc": "2.0", "id": 1, "result": {"context": {"slot": 1}}},
        {"jsonrpc": "2.0", "id": 1, "result": {"value": None}},
    ],
)
@pytest.mark.anyio
async def test_simulate_without_value_raises(payer, body):
    def handler(request):
        return httpx.Response(200, json=body)

    with pytest.raises(SimulationError, match="missing result.value"):
        await rpc_with(handler).simulate(versioned_tx(payer))


@pytest.mark.anyio
async def test_guard_blocks_when_simulation_result_is_missing(payer):
    ledger = rpc_with(lambda request: httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": None}))
    guard = TransactionGuard(ledger)

    with pytest.raises(SimulationError):
        await guard.validate_transaction(versioned_tx(payer))


@pytest.mark.anyio
async def test_send_passes_options(payer):
    stub = StubRpc()
    rpc = SolanaRpcClient(RPC, client=stub)
    tx = versioned_tx(payer)

    sig = await rpc.send(tx, skip_preflight=True, max_retries=3)

    assert sig == SIG
    raw, opts = stub.sent[0]
    assert raw == bytes(tx)
    assert opts.skip_preflight is True
    assert opts.max_retries == 3


@pytest.mark.anyio
async def test_send_error_becomes_transport_failure(payer):
    rpc = SolanaRpcClient(RPC, client=StubRpc(send_error=RPCException("Blockhash not found")))
    with pytest.raises(TransportFailure, match="Blockhash not found"):
        await rpc.send(versioned_tx(payer))


@pytest.mark.anyio
async def test_confirm_polls_until_confirmed():
    stub = StubRpc(statuses=[None, status(TransactionConfirmationStatus.Processed), status()])
    rpc = SolanaRpcClient(RPC, client=stub, poll_interval=0)
    await rpc.confirm(SIG)
    assert stub.statuses == []


@pytest.mark.anyio
async def test_confirm_onchain_error():
    rpc = SolanaRpcClient(RPC, client=StubRpc(statuses=[status(err="InstructionError")]), poll_interval=0)
    with pytest.raises(ConfirmationFailure) as exc:
        await rpc.confirm(SIG)
    assert exc.value.signature == SIG


@pytest.mark.anyio
async def test_confirm_timeout():
    rpc = SolanaRpcClient(RPC, client=StubRpc(), confirm_timeout=0.05, poll_interval=0.01)
    with pytest.raises(ConfirmationFailure, match="confirmation_timeout"):
        await rpc.confirm(SIG)


@pytest.mark.anyio
async def test_get_slot():
    assert await SolanaRpcClient(RPC, client=StubRpc(slot=777)).get_slot() == 777


@pytest.mark.parametrize(
    "message,reason",
    [
        ("Blockhash not found", TxFailureReason.BLOCKHASH_EXPIRED),
        ("insufficient lamports", TxFailureReason.INSUFFICIENT_FUNDS),
        ("InstructionError((0, Custom(6001)))", TxFailureReason.INSTRUCTION_ERROR),
        ("Transaction simulation failed: Error processing Instruction 0", TxFailureReason.PREFLIGHT_FAILED),
        ("connection reset", TxFailureReason.NETWORK_ERROR),
        ("???", TxFailureReason.UNKNOWN),
    ],
)
def test_classify_error(message, reason):
    assert classify_error(message) is reason
