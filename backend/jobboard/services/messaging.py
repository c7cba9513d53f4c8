import random

from jobboard.models.conversation import Conversation

# Canned answers used to simulate the other side of a conversation
SIMULATED_REPLIES = [
    "Thanks for reaching out! I'll get back to you soon.",
    "Sounds interesting! When would be a good time to discuss?",
    "I'd love to learn more about this opportunity.",
    "Let me check my schedule and get back to you.",
    "That looks great! I have some questions though.",
    "Perfect timing! I was just looking for something like this.",
    "Thanks for considering me for this position!",
]


def random_reply(rng: random.Random) -> str:
    return rng.choice(SIMULATED_REPLIES)


def avatar_initials(name: str) -> str:
    """'Maria da Silva' -> 'MD'"""
    return "".join(part[0] for part in name.split() if part).upper()[:2]


def matches_search(conversation: Conversation, term: str) -> bool:
    term = term.strip().lower()
    if not term:
        return True
    return term in conversation.participant.lower() or term in conversation.subject.lower()
