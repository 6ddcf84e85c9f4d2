"""Travel-type catalogue used to fill quiz result display metadata."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

HERO_IMAGE_TEMPLATE = "/images/quiz-character/{code}-final.png"


@dataclass(frozen=True)
class TravelTypeInfo:
    code: str
    name: str
    emoji: str
    short_description: str
    description: str


@dataclass(frozen=True)
class TravelTypeResultContent:
    code: str
    title: str
    emoji: str
    description: str
    short_description: str
    greeting: str
    hero_image: str


def _info(code: str, name: str, emoji: str, short_description: str, description: str) -> TravelTypeInfo:
    return TravelTypeInfo(
        code=code,
        name=name,
        emoji=emoji,
        short_description=short_description,
        description=description,
    )


TRAVEL_TYPES: Dict[str, TravelTypeInfo] = {
    info.code: info
    for info in (
        _info(
            "GRLP",
            "The Itinerary CEO",
            "📍",
            "Plans never falter, even with friends in tow",
            "Travel is a spreadsheet. Zero waste, maximum city domination. Lives for optimized "
            "schedules and clever logistics and prefers structured, efficient multi-stop adventures.",
        ),
        _info(
            "GRLF",
            "The Chaos Explorer",
            "⚡",
            "Head out and turn into promising alleys",
            "No plan? No problem. Alleys and intuition are the guide. Thrives on spontaneous "
            "discoveries and chases neon lights, street food, and last-minute adventures.",
        ),
        _info(
            "GRHP",
            "The Memory Host",
            "🎈",
            "Success is when everyone says they had fun",
            "The goal is everyone's smiles. Photos are just a bonus. Plans around group happiness "
            "and shared memories, blending structured fun with photogenic moments.",
        ),
        _info(
            "GRHF",
            "The Main-Character Tourist",
            "🎉",
            "High energy on location, doors open with vibes",
            "Main character energy lights up the city, and nights are usually dramatic. Loves "
            "high-energy, spotlight-worthy experiences and makes every scene feel cinematic.",
        ),
        _info(
            "GDHP",
            "The Trip Director",
            "🎬",
            "Edits wishes into one cohesive story",
            "Every trip has a theme, and even the afterglow is curated. Curates experiences like "
            "cinematic chapters with group-friendly pacing.",
        ),
        _info(
            "GDHF",
            "The Serendipity Chaser",
            "✨",
            "Detours are a talent. Serendipitous encounters are the reward",
            "One reservation, then let the universe take over. Collects meaningful coincidences "
            "and prefers flexible flow with soulful stops.",
        ),
        _info(
            "GDLP",
            "The City Strategist",
            "🧠",
            "Designs routes that reveal the city, reverse-engineering movement",
            "Cities are systems to understand from above and optimize along the way. Maps "
            "journeys like urban puzzles and keeps movement elegantly tuned.",
        ),
        _info(
            "GDLF",
            "The Glitch Hunter",
            "🧪",
            "Drawn to zones not found in guides",
            "Bugs over mainstream, always grinning at niche finds. Seeks oddities, subcultures, "
            "and fringe art, and collects you-had-to-be-there stories.",
        ),
        _info(
            "SRLP",
            "The Ritual Traveler",
            "🗂",
            "Research quietly, move calmly. Precision increases with each visit",
            "Refine the classics and update last year's plan. Enjoys quiet refinement and repeat "
            "visits, with room for nostalgic returns.",
        ),
        _info(
            "SRLF",
            "The Silent Pathfinder",
            "🗺",
            "Quiet but sees the optimal route",
            "Silent navigator whose crowd avoidance is instinct. Loves hushed backstreets and "
            "riverside walks and finds flow in solitude and soft light.",
        ),
        _info(
            "SRHP",
            "The Comfort Curator",
            "🫧",
            "Small, peaceful journeys feel right",
            "Comfort and gentleness always come first. Designs cozy, sensory-friendly itineraries "
            "focused on wellness and human warmth.",
        ),
        _info(
            "SRHF",
            "The Aesthetic Nomad",
            "🎨",
            'My "good" over trending. Falling for subtle beauty',
            "Choose places by light and sound, falling for quiet beauty every time. Prefers "
            "curated art experiences with gentle atmospheres.",
        ),
        _info(
            "SDHP",
            "The Soul Search Passenger",
            "🌌",
            "Introspection deepens at viewpoints and beaches",
            "Travel is a self-conference where scenery provides the answers. Reflects deeply "
            "through vistas and night skies, followed by journaling.",
        ),
        _info(
            "SDHF",
            "The Soft Daydreamer",
            "📖",
            "Travels collecting stories in bookshops and cafes",
            "Half reality, half the movie in your head. Collects narratives from bookshops and "
            "quaint cafes and moves through days like a gentle film sequence.",
        ),
        _info(
            "SDLP",
            "The System Architect",
            "🛰",
            "Hobby: designing routes with minimal movement, maximum understanding",
            "Wants to see the structure beneath the scenery. Breaks down cities into layers and "
            "flows and balances analysis with contemplative pauses.",
        ),
        _info(
            "SDLF",
            "The Rabbit-Hole Nomad",
            "🧩",
            "Few photos but tabs multiply. Detours are justice",
            "Researcher who falls down rabbit holes from a single sign. Follows curiosity into "
            "niche worlds and can spend hours decoding one mysterious clue.",
        ),
    )
}


def _normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def is_valid_travel_type_code(code: Optional[str]) -> bool:
    return _normalize_code(code) in TRAVEL_TYPES


def get_travel_type_info(code: Optional[str]) -> Optional[TravelTypeInfo]:
    """Return catalogue metadata, or ``None`` for codes outside the catalogue."""
    return TRAVEL_TYPES.get(_normalize_code(code))


def get_travel_type_result_content(code: Optional[str]) -> Optional[TravelTypeResultContent]:
    info = get_travel_type_info(code)
    if info is None:
        return None
    return TravelTypeResultContent(
        code=info.code,
        title=info.name,
        emoji=info.emoji,
        description=info.description,
        short_description=info.short_description,
        greeting=f"Your travel type is {info.name}.",
        hero_image=HERO_IMAGE_TEMPLATE.format(code=info.code),
    )


__all__ = [
    "TRAVEL_TYPES",
    "TravelTypeInfo",
    "TravelTypeResultContent",
    "get_travel_type_info",
    "get_travel_type_result_content",
    "is_valid_travel_type_code",
]
