"""Registry of live peer sessions keyed by PeerId."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from .schema import PeerId
from .transport import Transport


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PeerSession:
    """One connected transport plus the bookkeeping status polling needs."""

    peer: PeerId
    transport: Transport
    kind: str = "builtin"
    last_sync: str | None = None

    def touch(self) -> str:
        self.last_sync = utc_now()
        return self.last_sync


class PeerRegistry:
    """In-memory mapping of PeerId to session; at most one session per peer.

    Mutated only by IntegrationClient.initialize()/disconnect(); concurrent
    readers are safe because lookups never yield to the event loop.
    """

    def __init__(self) -> None:
        self._sessions: dict[PeerId, PeerSession] = {}

    def register(self, session: PeerSession) -> None:
        if session.peer in self._sessions:
            raise ValueError(f"peer {session.peer.value} already registered")
        self._sessions[session.peer] = session

    def get(self, peer: PeerId) -> PeerSession | None:
        return self._sessions.get(peer)

    def remove(self, peer: PeerId) -> PeerSession | None:
        return self._sessions.pop(peer, None)

    def sessions(self) -> list[PeerSession]:
        return list(self._sessions.values())

    def peers(self) -> list[PeerId]:
        return list(self._sessions)

    def clear(self) -> None:
        self._sessions.clear()

    def __contains__(self, peer: object) -> bool:
        return peer in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
