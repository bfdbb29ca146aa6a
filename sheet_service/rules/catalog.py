"""Fixed names used throughout a character sheet."""

from typing import Dict, Optional, Tuple

ATTRIBUTE_NAMES: Tuple[str, ...] = (
    "courage",
    "intelligence",
    "concentration",
    "charisma",
    "mentalResilience",
    "dexterity",
    "endurance",
    "strength",
)

BASE_VALUE_NAMES: Tuple[str, ...] = (
    "healthPoints",
    "mentalHealth",
    "armorLevel",
    "naturalArmor",
    "initiativeBaseValue",
    "attackBaseValue",
    "paradeBaseValue",
    "rangedAttackBaseValue",
    "luckPoints",
    "bonusActionsPerCombatRound",
    "legendaryActions",
)

LEVEL_UP_UPDATABLE_BASE_VALUES: Tuple[str, ...] = (
    "healthPoints",
    "armorLevel",
    "initiativeBaseValue",
    "luckPoints",
    "bonusActionsPerCombatRound",
    "legendaryActions",
)

# Base values that feed into attack and parade of combat skills
COMBAT_BASE_VALUES: Tuple[str, ...] = ("attackBaseValue", "paradeBaseValue", "rangedAttackBaseValue")

COMBAT_CATEGORY = "combat"
MELEE = "melee"
RANGED = "ranged"
COMBAT_SKILL_CATEGORIES: Tuple[str, ...] = (MELEE, RANGED)

MELEE_SKILLS: Tuple[str, ...] = (
    "martialArts",
    "barehanded",
    "chainWeapons",
    "daggers",
    "slashingWeaponsSharp1h",
    "slashingWeaponsBlunt1h",
    "thrustingWeapons1h",
    "slashingWeaponsSharp2h",
    "slashingWeaponsBlunt2h",
    "thrustingWeapons2h",
)

RANGED_SKILLS: Tuple[str, ...] = (
    "missile",
    "firearmSimple",
    "firearmMedium",
    "firearmComplex",
    "heavyWeapons",
)

# Available points a new character starts with per combat skill
DEFAULT_COMBAT_SKILL_HANDLING = 18
COMBAT_SKILL_HANDLING: Dict[str, int] = {
    "martialArts": 12,
    "missile": 8,
    "firearmSimple": 10,
}

SKILLS: Dict[str, Tuple[str, ...]] = {
    COMBAT_CATEGORY: MELEE_SKILLS + RANGED_SKILLS,
    "body": (
        "athletics",
        "juggleries",
        "climbing",
        "bodyControl",
        "riding",
        "sneaking",
        "swimming",
        "selfControl",
        "hiding",
        "singing",
        "sharpnessOfSenses",
        "dancing",
        "quaffing",
        "pickpocketing",
    ),
    "social": (
        "seduction",
        "etiquette",
        "teaching",
        "acting",
        "writtenExpression",
        "streetKnowledge",
        "knowledgeOfHumanNature",
        "persuading",
        "convincing",
    ),
    "nature": (
        "tracking",
        "knottingSkills",
        "trapping",
        "fishing",
        "orientation",
        "wildernessLife",
    ),
    "knowledge": (
        "anatomy",
        "architecture",
        "geography",
        "history",
        "petrology",
        "botany",
        "philosophy",
        "astronomy",
        "mathematics",
        "knowledgeOfTheLaw",
        "estimating",
        "zoology",
        "technology",
        "chemistry",
        "warfare",
        "itSkills",
        "mechanics",
    ),
    "handcraft": (
        "training",
        "woodwork",
        "foodProcessing",
        "leatherProcessing",
        "metalwork",
        "stonework",
        "fabricProcessing",
        "alcoholProduction",
        "steeringVehicles",
        "fineMechanics",
        "cheating",
        "bargaining",
        "firstAid",
        "calmingSbDown",
        "drawingAndPainting",
        "makingMusic",
        "lockpicking",
    ),
}

# Skills every new character starts with, activated for free
START_SKILLS: Dict[str, Tuple[str, ...]] = {
    COMBAT_CATEGORY: SKILLS[COMBAT_CATEGORY],
    "body": (
        "athletics",
        "climbing",
        "bodyControl",
        "sneaking",
        "swimming",
        "selfControl",
        "hiding",
        "singing",
        "sharpnessOfSenses",
        "quaffing",
    ),
    "social": ("etiquette", "knowledgeOfHumanNature", "persuading"),
    "nature": ("knottingSkills",),
    "knowledge": ("mathematics", "zoology"),
    "handcraft": (
        "woodwork",
        "foodProcessing",
        "fabricProcessing",
        "steeringVehicles",
        "bargaining",
        "firstAid",
        "calmingSbDown",
        "drawingAndPainting",
    ),
}


def combat_category_of(skill_name: str) -> Optional[str]:
    """Return ``melee`` or ``ranged`` for a combat skill, ``None`` otherwise."""
    if skill_name in MELEE_SKILLS:
        return MELEE
    if skill_name in RANGED_SKILLS:
        return RANGED
    return None


def combat_skill_handling(skill_name: str) -> int:
    return COMBAT_SKILL_HANDLING.get(skill_name, DEFAULT_COMBAT_SKILL_HANDLING)


def is_known_skill(category: str, skill_name: str) -> bool:
    return skill_name in SKILLS.get(category, ())
