"""Match scoring for SideQuest.

Pure functions turning preference records and quests into 0-100 scores.
Nothing here touches the store.
"""

from itertools import combinations

from sidequest.models import Quest, UserPreferences


# Quest match weights
INTEREST_WEIGHT = 40
SKILL_WEIGHT = 30
TEAM_SIZE_WEIGHT = 20
TIME_WEIGHT = 10

# Largest meaningful differences on the 1-5 skill scale and for team sizes
MAX_SKILL_GAP = 4
MAX_TEAM_SIZE_GAP = 3


def _clamp(score: float) -> float:
    return max(0.0, min(100.0, score))


def _overlap(a: set, b: set) -> float:
    """Shared items over the larger set size, 0 when both are empty."""
    largest = max(len(a), len(b))
    if largest == 0:
        return 0.0
    return len(a & b) / largest


def quest_match_score(prefs: UserPreferences, quest: Quest) -> float:
    """Score how well a quest fits a user's preferences.

    Weighted sum of interest overlap (40), skill closeness (30), team size
    closeness (20) and time feasibility (10 when the weekly hours cover the
    quest, 5 otherwise).

    Args:
        prefs: The user's preferences
        quest: The quest to score

    Returns:
        Score between 0 and 100

    Example:
        >>> prefs = UserPreferences(["coding"], 2, 3, 5)
        >>> quest = Quest("q1", "Hack night", tags=["coding"], requiredSkillLevel=2,
        ...               maxTeamSize=3, estimatedHours=4)
        >>> quest_match_score(prefs, quest)
        100.0
    """
    score = 0.0
    total_weight = 0

    score += _overlap(set(prefs.interests), set(quest.tags)) * INTEREST_WEIGHT
    total_weight += INTEREST_WEIGHT

    skill_gap = abs(prefs.skillLevel - quest.requiredSkillLevel)
    score += max(0.0, 1 - skill_gap / MAX_SKILL_GAP) * SKILL_WEIGHT
    total_weight += SKILL_WEIGHT

    size_gap = abs(prefs.preferredTeamSize - quest.maxTeamSize)
    score += max(0.0, 1 - size_gap / MAX_TEAM_SIZE_GAP) * TEAM_SIZE_WEIGHT
    total_weight += TEAM_SIZE_WEIGHT

    score += TIME_WEIGHT if prefs.availableHoursPerWeek >= quest.weekly_hours else TIME_WEIGHT / 2
    total_weight += TIME_WEIGHT

    return _clamp(score / total_weight * 100)


def _trait_overlap(a: dict[str, float], b: dict[str, float]) -> float:
    a = {tag: w for tag, w in a.items() if w > 0}
    b = {tag: w for tag, w in b.items() if w > 0}
    largest = max(sum(a.values(), 0.0), sum(b.values(), 0.0))
    if largest == 0:
        return 0.0
    shared = sum(min(a[tag], b[tag]) for tag in sorted(a.keys() & b.keys()))
    return shared / largest


def user_compatibility(a: UserPreferences, b: UserPreferences) -> float:
    """Score how well two users would get along on a quest.

    Symmetric: ``user_compatibility(a, b) == user_compatibility(b, a)``.

    Components: skill closeness (30, minus 10 per level apart), interest
    overlap (30), personality trait overlap weighted by tally (20) and team
    size preference (20 when equal, scaled by smaller/larger otherwise).
    """
    score = 0.0

    score += max(0.0, 30 - abs(a.skillLevel - b.skillLevel) * 10)
    score += _overlap(set(a.interests), set(b.interests)) * 30
    score += _trait_overlap(a.personalityTraits, b.personalityTraits) * 20

    smaller = min(a.preferredTeamSize, b.preferredTeamSize)
    larger = max(a.preferredTeamSize, b.preferredTeamSize)
    if smaller == larger and larger > 0:
        score += 20
    elif smaller > 0:
        score += smaller / larger * 20

    return _clamp(score)


def team_match_score(members: list[UserPreferences], quest: Quest) -> int:
    """Overall score for a formed team.

    Mean of the average pairwise compatibility and the average quest score,
    rounded. Teams of fewer than two people score 0.
    """
    if len(members) < 2:
        return 0

    pair_scores = [user_compatibility(x, y) for x, y in combinations(members, 2)]
    avg_compatibility = sum(pair_scores) / len(pair_scores)

    quest_scores = [quest_match_score(m, quest) for m in members]
    avg_quest_match = sum(quest_scores) / len(quest_scores)

    return round((avg_compatibility + avg_quest_match) / 2)
