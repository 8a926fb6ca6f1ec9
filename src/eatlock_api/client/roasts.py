"""Canned roast and praise lines used when the model's roastLine is empty."""

import random

from eatlock_api.models.vision import CompareVerdict, FoodReasonCode

PRE_SCAN_ROASTS: dict[FoodReasonCode, list[str]] = {
    FoodReasonCode.NOT_FOOD: [
        "That is a table. I asked for FOOD.",
        "Bold of you to scan air. Feed me pixels of real food.",
        "I have seen better meals in a screensaver.",
    ],
    FoodReasonCode.HAND_SELFIE: [
        "Move your hand. I am trying to judge your food, not your manicure.",
        "Fingers are not a food group. Try again.",
    ],
    FoodReasonCode.TOO_DARK: [
        "Are you eating in a cave? Turn on a light.",
        "I am a food scanner, not a bat. I need light.",
    ],
    FoodReasonCode.TOO_BLURRY: [
        "I need food, not abstract art.",
        "Steady hands, champion. Try again.",
    ],
    FoodReasonCode.NO_PLATE: [
        "I see something, but no plate or bowl. Where is the meal?",
        "Food usually comes on a plate. Just saying.",
    ],
    FoodReasonCode.BAD_FRAMING: [
        "Centre the food in frame, please.",
        "Nice ceiling. Now show me the meal.",
    ],
    FoodReasonCode.OK: [
        "Hmm, something went wrong. Try a clearer photo.",
        "My circuits are confused. One more try?",
    ],
}

POST_SCAN_MESSAGES: dict[CompareVerdict, list[str]] = {
    CompareVerdict.EATEN: [
        "Clean plate club! You absolute legend.",
        "Not a crumb left. Respect.",
        "The plate is spotless. Chef would be proud.",
    ],
    CompareVerdict.PARTIAL: [
        "Solid effort. Most of it is gone, but I see leftovers.",
        "Almost there! Your fork gave up before you did.",
    ],
    CompareVerdict.UNCHANGED: [
        "The food is... still there. All of it.",
        "You had ONE job. Eat. The. Food.",
        "The before and after look suspiciously identical.",
    ],
    CompareVerdict.UNVERIFIABLE: [
        "I genuinely cannot tell if you ate. Lighting? Angle? Mystery?",
        "Inconclusive. I will give you the benefit of the doubt... this time.",
    ],
}

FOOD_CONFIRMED_MESSAGES = [
    "Food detected! Looking delicious.",
    "Yep, that is definitely food. Let us get started!",
    "Nice spread! Food verified. Ready when you are.",
]


def pre_scan_roast(reason_code: FoodReasonCode | str, rng: random.Random | None = None) -> str:
    """Fallback line for a rejected before-photo. Unknown codes use the NOT_FOOD pool."""
    try:
        pool = PRE_SCAN_ROASTS[FoodReasonCode(reason_code)]
    except ValueError:
        pool = PRE_SCAN_ROASTS[FoodReasonCode.NOT_FOOD]
    return (rng or random).choice(pool)


def post_scan_roast(verdict: CompareVerdict | str, rng: random.Random | None = None) -> str:
    """Fallback line for a comparison verdict. Unknown verdicts use the UNVERIFIABLE pool."""
    try:
        pool = POST_SCAN_MESSAGES[CompareVerdict(verdict)]
    except ValueError:
        pool = POST_SCAN_MESSAGES[CompareVerdict.UNVERIFIABLE]
    return (rng or random).choice(pool)


def food_confirmed_message(rng: random.Random | None = None) -> str:
    return (rng or random).choice(FOOD_CONFIRMED_MESSAGES)
