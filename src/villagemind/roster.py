"""The village NPC roster."""

from dataclasses import dataclass


@dataclass(frozen=True)
class NpcRosterEntry:
    """An NPC the player can talk to."""

    id: str
    name: str
    role: str


NPC_ROSTER: tuple[NpcRosterEntry, ...] = (
    NpcRosterEntry(id="mira", name="Mira", role="Hall Host"),
    NpcRosterEntry(id="theo", name="Theo", role="Carpenter"),
    NpcRosterEntry(id="jun", name="Jun", role="Garden Keeper"),
    NpcRosterEntry(id="pia", name="Pia", role="Market Scout"),
)


def get_npc_roster() -> list[NpcRosterEntry]:
    return list(NPC_ROSTER)


def get_npc_ids() -> list[str]:
    return [npc.id for npc in NPC_ROSTER]


def get_npc_by_id(npc_id: str) -> NpcRosterEntry | None:
    for npc in NPC_ROSTER:
        if npc.id == npc_id:
            return npc
    return None
