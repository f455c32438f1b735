from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Actor:
    """Who is performing a mutation; recorded on stock history and audit rows."""
    actor_id: str
    kind: str = "user"

    @property
    def label(self) -> str:
        if self.kind in ("user", "system"):
            return self.actor_id
        return f"{self.kind}:{self.actor_id}"


SYSTEM_ACTOR = Actor(actor_id="system", kind="system")


def make_actor(actor_id: str | None, kind: str | None = None) -> Actor:
    if not actor_id or not str(actor_id).strip():
        return SYSTEM_ACTOR
    return Actor(actor_id=str(actor_id).strip(), kind=(kind or "user").strip() or "user")
