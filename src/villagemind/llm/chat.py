"""Assembling the chat request for an NPC reply."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .types import LlmChatInput, LlmMessage

if TYPE_CHECKING:
    from ..conversation_log import ConversationEntry
    from ..memory.retrieval import NpcMemoryContext

SYSTEM_GUIDELINES: tuple[str, ...] = (
    "Stay in character and speak in first person.",
    "Keep replies to 1-3 sentences.",
    "Ask one gentle follow-up question when it fits.",
    "Avoid repeating the player's words verbatim.",
)


@dataclass(frozen=True)
class FewShotPair:
    user: str
    assistant: str


FALLBACK_FEW_SHOTS: tuple[FewShotPair, ...] = (
    FewShotPair(
        user="Today felt a little overwhelming, but I want to keep going.",
        assistant=(
            "Thanks for sharing that. Let's take it one step at a time and find "
            "something small that feels steady."
        ),
    ),
)

NPC_FEW_SHOTS: dict[str, tuple[FewShotPair, ...]] = {
    "mira": (
        FewShotPair(
            user="The hall feels busy today; I want it to feel welcoming.",
            assistant=(
                "We can add a cozy touch and greet folks as they arrive. "
                "Want me to set up a tea corner?"
            ),
        ),
        FewShotPair(
            user="I'm hosting a small music night this weekend.",
            assistant="That sounds lovely. Who's coming, and do you want help with invitations?",
        ),
    ),
    "theo": (
        FewShotPair(
            user="I need sturdy planks for the bridge repairs.",
            assistant="I can source oak or cedar and prep the cuts. Do you have a size in mind?",
        ),
        FewShotPair(
            user="I like warm lantern light in the workshop.",
            assistant="I'll keep lantern oil stocked and tune the fixtures for a softer glow.",
        ),
    ),
    "jun": (
        FewShotPair(
            user="I'm trying to plan a calming herb patch.",
            assistant="Lavender and mint could help. Would you like a simple planting schedule?",
        ),
        FewShotPair(
            user="I read about compost teas and want to try them.",
            assistant="We can start with a gentle brew and track the results together.",
        ),
    ),
    "pia": (
        FewShotPair(
            user="I'm worried the rain will slow deliveries.",
            assistant=(
                "That sounds stressful. We can adjust routes and set backups "
                "to ease the pressure."
            ),
        ),
        FewShotPair(
            user="I love citrus jam and want more for the market.",
            assistant="Got it. I'll keep an eye out for suppliers and set a reminder.",
        ),
    ),
}


def get_few_shot_messages(npc_id: str) -> list[LlmMessage]:
    """Example exchanges for an NPC, falling back to a generic pair."""
    pairs = NPC_FEW_SHOTS.get(npc_id, FALLBACK_FEW_SHOTS)
    messages: list[LlmMessage] = []
    for pair in pairs:
        messages.append(LlmMessage(role="user", content=pair.user))
        messages.append(LlmMessage(role="assistant", content=pair.assistant))
    return messages


def build_npc_chat_input(
    npc_id: str,
    memory_context: NpcMemoryContext,
    history: list[ConversationEntry],
    player_text: str,
) -> LlmChatInput:
    """Build the reply request: memory prompt and guidelines, few shots,
    conversation history, then the player's new line.
    """
    guidelines = "\n".join(f"- {line}" for line in SYSTEM_GUIDELINES)
    system_prompt = f"{memory_context.prompt}\n\nGuidelines:\n{guidelines}"

    history_messages = [
        LlmMessage(
            role="user" if entry.speaker == "player" else "assistant",
            content=entry.text,
        )
        for entry in history
    ]
    return LlmChatInput(
        system_prompt=system_prompt,
        messages=[
            *get_few_shot_messages(npc_id),
            *history_messages,
            LlmMessage(role="user", content=player_text),
        ],
    )
