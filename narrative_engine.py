"""Era / momentum derivation and prompt shaping for Sora's story."""

import math

# ---------------------------------------------------------------------------
# Eras & momentum
# ---------------------------------------------------------------------------

ERA_ASH = "THE_ASH"
ERA_GATE = "THE_GATE"
ERA_RONIN = "THE_RONIN"
ERA_EMPIRE = "THE_EMPIRE"
ERA_BEYOND = "THE_BEYOND"

# (exclusive upper bound, era), evaluated low to high
ERA_THRESHOLDS = [
    (40_000, ERA_ASH),
    (60_000, ERA_GATE),
    (1_000_000, ERA_RONIN),
    (100_000_000, ERA_EMPIRE),
]
ERAS = (ERA_ASH, ERA_GATE, ERA_RONIN, ERA_EMPIRE, ERA_BEYOND)

MOMENTUM_UP = "UP"
MOMENTUM_DOWN = "DOWN"
MOMENTUM_STABLE = "STABLE"

MOMENTUM_DEADZONE_PCT = 0.5

STORY_BEGINS = "The story begins"

SYSTEM_PROMPT = """You narrate Sora's story as one continuous flow. Each beat connects directly to the last.

RULES:
- Never mention crypto, trading, price, market, moon, pump
- 1-2 short sentences only (15-30 words)
- Continue directly from the previous beat
- Simple, clear prose - not overly literary
- End each beat so the next can continue naturally

THE STORY:
Sora is a 15-year-old boy abandoned at a burnt shrine. He has a wooden fox carving (from his mother) and a tainted blade. He survives alone in a harsh world. The fox and blade can never be lost.

ERAS:
- THE_ASH ($0-40K): Burnt shrine, dead forest, winter. Scavenging, hiding, surviving.
- THE_GATE ($40K-60K): Iron gate at ruins' edge. First real danger.
- THE_RONIN ($60K-1M): Open roads, wilderness. Wandering, meeting others.
- THE_EMPIRE ($1M-100M): Fortified territory. Leading, building.
- THE_BEYOND ($100M+): Throne, legacy. Ruler, legend.

MOMENTUM:
- UP: Small win, progress, finding something
- DOWN: Setback, difficulty, obstacle (Sora adapts)
- STABLE: Quiet moment, observation, rest

Output ONLY the narrative text, nothing else."""


def sanitize_market_cap(value) -> float:
    """Coerce a market-cap value to a finite, non-negative float (else 0)."""
    try:
        mc = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(mc) or mc < 0:
        return 0.0
    return mc


def classify_era(market_cap: float) -> str:
    mc = sanitize_market_cap(market_cap)
    for upper, era in ERA_THRESHOLDS:
        if mc < upper:
            return era
    return ERA_BEYOND


def classify_momentum(previous: float, current: float) -> str:
    """Classify the trend since the last cycle.

    No baseline (previous <= 0) is always STABLE. Otherwise the percent change
    must leave the ±0.5% deadzone to count as UP or DOWN.
    """
    if previous <= 0:
        return MOMENTUM_STABLE
    change = (current - previous) / previous * 100
    if change > MOMENTUM_DEADZONE_PCT:
        return MOMENTUM_UP
    if change < -MOMENTUM_DEADZONE_PCT:
        return MOMENTUM_DOWN
    return MOMENTUM_STABLE


# ---------------------------------------------------------------------------
# Prompt & cleanup
# ---------------------------------------------------------------------------

def format_market_cap(market_cap: float) -> str:
    """Round half-up and thousands-separate: 1234567.5 → '1,234,568'."""
    return f"{math.floor(sanitize_market_cap(market_cap) + 0.5):,}"


def build_prompt(era: str, market_cap: float, momentum: str, previous_beat: str) -> str:
    return (
        "\n"
        f"Era: {era}\n"
        f"Market Cap: ${format_market_cap(market_cap)}\n"
        f"Momentum: {momentum}\n"
        f'Previous beat: "{previous_beat or STORY_BEGINS}"\n'
        "\n"
        "Generate the next beat (1-2 sentences, continue from previous):"
    )


def _strip_pair(text: str, opening: str, closing: str) -> str:
    if text.startswith(opening):
        text = text[len(opening):]
    if text.endswith(closing):
        text = text[:-len(closing)]
    return text


def clean_narrative(raw: str) -> str:
    """Strip one leading '[' / trailing ']' and then one pair of quotes.

    Best-effort cosmetic normalization of model output, not a parser.
    """
    text = (raw or "").strip()
    text = _strip_pair(text, "[", "]")
    text = _strip_pair(text, '"', '"')
    return text.strip()
