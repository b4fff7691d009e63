# /src/livetags/actor.py
# Actor - typed proxy for one remote service endpoint

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict


class CallMode(str, Enum):
    """How a remote method is invoked."""
    QUERY = "query"    # read-only, answered by a single replica
    UPDATE = "update"  # state-changing, goes through consensus


@dataclass(frozen=True)
class ServiceInterface:
    """Method names a remote service exposes, with their call modes."""
    methods: Dict[str, CallMode] = field(default_factory=dict)

    def mode_of(self, name: str) -> CallMode:
        return self.methods[name]


def default_host(canister_id: str) -> str:
    """Public gateway URL for a canister."""
    return f"https://{canister_id}.ic0.app"


class Agent(ABC):
    """Network channel an Actor sends its calls through."""

    def __init__(self, host: str):
        self.host = host

    @abstractmethod
    async def query(self, canister_id: str, method: str, args: tuple) -> Any:
        pass

    @abstractmethod
    async def update(self, canister_id: str, method: str, args: tuple) -> Any:
        pass


class Actor:
    """Proxy whose attributes are the remote service's methods.

    Each declared method becomes a coroutine function forwarding its
    positional arguments to the agent. Undeclared names raise
    AttributeError.
    """

    def __init__(self, canister_id: str, interface: ServiceInterface, agent: Agent):
        self._canister_id = canister_id
        self._interface = interface
        self._agent = agent

    @property
    def canister_id(self) -> str:
        return self._canister_id

    @property
    def agent(self) -> Agent:
        return self._agent

    def __getattr__(self, name: str) -> Callable[..., Awaitable[Any]]:
        if name.startswith("_") or name not in self._interface.methods:
            raise AttributeError(f"{self._canister_id} has no method {name!r}")

        mode = self._interface.mode_of(name)
        send = self._agent.query if mode == CallMode.QUERY else self._agent.update

        async def call(*args: Any) -> Any:
            return await send(self._canister_id, name, args)

        call.__name__ = name
        return call


def create_actor(canister_id: str, interface: ServiceInterface, agent: Agent) -> Actor:
    """Build an Actor for canister_id speaking the given interface."""
    return Actor(canister_id, interface, agent)
