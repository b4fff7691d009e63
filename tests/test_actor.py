# Tests for remote actor proxies

import pytest

from livetags import Agent, CallMode, ServiceInterface, create_actor, default_host


class RecordingAgent(Agent):
    def __init__(self, host="https://example.test"):
        super().__init__(host)
        self.calls = []

    async def query(self, canister_id, method, args):
        self.calls.append(("query", canister_id, method, args))
        return {"method": method, "args": list(args)}

    async def update(self, canister_id, method, args):
        self.calls.append(("update", canister_id, method, args))
        return "ok"


SIGNATURE_SERVICE = ServiceInterface(methods={
    "get_public_key": CallMode.QUERY,
    "sign": CallMode.UPDATE,
})


class TestActor:
    def test_default_host(self):
        assert default_host("rrkah-fqaaa-aaaaa-aaaaq-cai") == "https://rrkah-fqaaa-aaaaa-aaaaq-cai.ic0.app"

    @pytest.mark.asyncio
    async def test_query_method(self):
        agent = RecordingAgent()
        actor = create_actor("cid", SIGNATURE_SERVICE, agent)

        result = await actor.get_public_key("key-1")

        assert result == {"method": "get_public_key", "args": ["key-1"]}
        assert agent.calls == [("query", "cid", "get_public_key", ("key-1",))]

    @pytest.mark.asyncio
    async def test_update_method(self):
        agent = RecordingAgent()
        actor = create_actor("cid", SIGNATURE_SERVICE, agent)

        assert await actor.sign(b"payload", 3) == "ok"
        assert agent.calls == [("update", "cid", "sign", (b"payload", 3))]

    def test_undeclared_method(self):
        actor = create_actor("cid", SIGNATURE_SERVICE, RecordingAgent())
        with pytest.raises(AttributeError):
            actor.transfer

    def test_properties(self):
        agent = RecordingAgent()
        actor = create_actor("cid", SIGNATURE_SERVICE, agent)
        assert actor.canister_id == "cid"
        assert actor.agent is agent
        assert actor.sign.__name__ == "sign"
