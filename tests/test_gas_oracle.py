"""Tests for the JSON-RPC gas oracle."""

from decimal import Decimal

import pytest

from trinity_planner.gas_oracle import RpcGasOracle


class FakeResponse:
    def __init__(self, body):
        self.body = body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return False

    def raise_for_status(self):
        pass

    async def json(self):
        return self.body


class FakeSession:
    """Replays a list of responses or exceptions."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.payloads = []
        self.closed = False

    def post(self, url, json=None):
        self.payloads.append(json)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return FakeResponse(outcome)

    async def close(self):
        self.closed = True


class TestRpcGasOracle:

    @pytest.mark.asyncio
    async def test_converts_wei_to_gwei(self):
        session = FakeSession([{"jsonrpc": "2.0", "id": 1, "result": hex(20 * 10 ** 9)}])
        oracle = RpcGasOracle("http://rpc.local", session=session)

        assert await oracle.gas_price_gwei() == Decimal("20")
        assert session.payloads[0]["method"] == "eth_gasPrice"

    @pytest.mark.asyncio
    async def test_retries_transient_error(self):
        session = FakeSession([
            ConnectionError("connection reset by peer"),
            {"result": hex(35 * 10 ** 9)},
        ])
        oracle = RpcGasOracle("http://rpc.local", max_retries=1, session=session)

        assert await oracle.gas_price_gwei() == Decimal("35")
        assert len(session.payloads) == 2

    @pytest.mark.asyncio
    async def test_rpc_error_is_raised(self):
        session = FakeSession([{"error": {"code": -32601, "message": "method not found"}}])
        oracle = RpcGasOracle("http://rpc.local", session=session)

        with pytest.raises(ValueError):
            await oracle.gas_price_gwei()
        assert len(session.payloads) == 1

    @pytest.mark.asyncio
    async def test_injected_session_is_not_closed(self):
        session = FakeSession([])
        oracle = RpcGasOracle("http://rpc.local", session=session)
        await oracle.close()

        assert not session.closed

    def test_from_config_without_url(self, config):
        assert RpcGasOracle.from_config(config) is None
