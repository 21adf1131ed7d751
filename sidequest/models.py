"""
Data models for SideQuest.

Lightweight dataclasses mirroring the documents kept in the store. Each class
converts to and from the camelCase document shape with ``to_doc`` /
``from_doc``; timestamps are stored as ISO 8601 UTC strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from typing import Any


# Collection names
USERS = "users"
QUESTS = "quests"
LEGACY_PREFERENCES = "userPreferences"
ONBOARDING_QUESTIONS = "onboardingQuestions"
TEAMS = "teams"
FEEDBACK = "feedback"


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def to_iso(value: datetime) -> str:
    """Format an aware datetime the way documents store it (``...Z``)."""
    return value.astimezone(UTC).isoformat().replace('+00:00', 'Z')


def parse_time(value: Any) -> datetime | None:
    """Parse a stored timestamp; naive values are taken as UTC."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class QuestStatus(str, Enum):
    OPEN = "open"
    FORMING = "forming"
    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in (QuestStatus.COMPLETED, QuestStatus.EXPIRED)


# Position in the forward path; expired sits outside it
STATUS_ORDER = {
    QuestStatus.OPEN: 0,
    QuestStatus.FORMING: 1,
    QuestStatus.ACTIVE: 2,
    QuestStatus.COMPLETED: 3,
}


@dataclass
class UserPreferences:
    """
    A user's matching profile.

    Attributes:
        interests: Interest tags, compared as a set.
        skillLevel: Self-rated skill from 1 to 5.
        preferredTeamSize: Preferred number of people per quest.
        availableHoursPerWeek: Weekly time budget.
        personalityTraits: Tag -> weight tally from onboarding and feedback.
    """

    interests: list[str] = field(default_factory=list)
    skillLevel: int = 1
    preferredTeamSize: int = 2
    availableHoursPerWeek: float = 5
    personalityTraits: dict[str, float] = field(default_factory=dict)

    @classmethod
    def default(cls) -> UserPreferences:
        return cls()

    @classmethod
    def from_doc(cls, doc: dict[str, Any] | None) -> UserPreferences:
        if not doc:
            return cls.default()
        traits = doc.get('personalityTraits') or {}
        # Older profiles stored traits as a plain list of tags
        if isinstance(traits, list):
            traits = {tag: 1 for tag in traits}
        return cls(
            interests=list(doc.get('interests') or []),
            skillLevel=int(doc.get('skillLevel') or 1),
            preferredTeamSize=int(doc.get('preferredTeamSize') or 2),
            availableHoursPerWeek=float(doc.get('availableHoursPerWeek') or 0),
            personalityTraits=dict(traits),
        )

    def to_doc(self) -> dict[str, Any]:
        return {
            'interests': list(self.interests),
            'skillLevel': self.skillLevel,
            'preferredTeamSize': self.preferredTeamSize,
            'availableHoursPerWeek': self.availableHoursPerWeek,
            'personalityTraits': dict(self.personalityTraits),
        }


@dataclass
class TeamMember:
    """A user's join record embedded in a quest."""

    userId: str
    displayName: str
    joinedAt: str
    status: str = "joined"

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> TeamMember:
        return cls(
            userId=doc['userId'],
            displayName=doc.get('displayName', ''),
            joinedAt=doc.get('joinedAt', ''),
            status=doc.get('status', 'joined'),
        )

    def to_doc(self) -> dict[str, Any]:
        return {
            'userId': self.userId,
            'displayName': self.displayName,
            'joinedAt': self.joinedAt,
            'status': self.status,
        }


@dataclass
class CompletedQuest:
    """History entry appended to a user when a quest completes."""

    questId: str
    completedAt: str
    title: str
    teamSize: int

    def to_doc(self) -> dict[str, Any]:
        return {
            'questId': self.questId,
            'completedAt': self.completedAt,
            'title': self.title,
            'teamSize': self.teamSize,
        }


@dataclass
class Quest:
    """A joinable group activity."""

    id: str
    title: str
    description: str = ""
    tags: list[str] = field(default_factory=list)
    category: str = ""
    requiredSkillLevel: int = 1
    minTeamSize: int = 1
    maxTeamSize: int = 4
    location: str = ""
    durationHours: float = 1
    estimatedHours: float | None = None
    startTime: datetime | None = None
    endTime: datetime | None = None
    status: QuestStatus = QuestStatus.OPEN
    teamMembers: list[TeamMember] = field(default_factory=list)
    completedAt: datetime | None = None

    @property
    def weekly_hours(self) -> float:
        """Time commitment used for scoring."""
        if self.estimatedHours is not None:
            return self.estimatedHours
        return self.durationHours

    @property
    def team_size(self) -> int:
        return len(self.teamMembers)

    def has_member(self, user_id: str) -> bool:
        return any(member.userId == user_id for member in self.teamMembers)

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> Quest:
        estimated = doc.get('estimatedHours')
        return cls(
            id=doc['id'],
            title=doc.get('title') or 'Unnamed Quest',
            description=doc.get('description') or '',
            tags=list(doc.get('tags') or []),
            category=doc.get('category') or '',
            requiredSkillLevel=int(doc.get('requiredSkillLevel') or 1),
            minTeamSize=int(doc.get('minTeamSize') or 1),
            maxTeamSize=int(doc.get('maxTeamSize') or 1),
            location=doc.get('location') or '',
            durationHours=float(doc.get('durationHours') or 0),
            estimatedHours=float(estimated) if estimated is not None else None,
            startTime=parse_time(doc.get('startTime')),
            endTime=parse_time(doc.get('endTime')),
            status=QuestStatus(doc.get('status') or QuestStatus.OPEN.value),
            teamMembers=[TeamMember.from_doc(m) for m in doc.get('teamMembers') or []],
            completedAt=parse_time(doc.get('completedAt')),
        )

    def to_doc(self) -> dict[str, Any]:
        """Document fields, without the id (ids live in the store key)."""
        doc: dict[str, Any] = {
            'title': self.title,
            'description': self.description,
            'tags': list(self.tags),
            'category': self.category,
            'requiredSkillLevel': self.requiredSkillLevel,
            'minTeamSize': self.minTeamSize,
            'maxTeamSize': self.maxTeamSize,
            'location': self.location,
            'durationHours': self.durationHours,
            'status': self.status.value,
            'teamMembers': [m.to_doc() for m in self.teamMembers],
            'currentTeamSize': self.team_size,
        }
        if self.estimatedHours is not None:
            doc['estimatedHours'] = self.estimatedHours
        if self.startTime is not None:
            doc['startTime'] = to_iso(self.startTime)
        if self.endTime is not None:
            doc['endTime'] = to_iso(self.endTime)
        if self.completedAt is not None:
            doc['completedAt'] = to_iso(self.completedAt)
        return doc


@dataclass
class QuestMatch:
    """A quest recommended to a user."""

    quest: Quest
    matchScore: float


@dataclass
class TeammateMatch:
    """A candidate teammate for a (user, quest) pair."""

    userId: str
    displayName: str
    preferences: UserPreferences
    compatibilityScore: float
    questMatchScore: float

    @property
    def combinedScore(self) -> float:
        return (self.compatibilityScore + self.questMatchScore) / 2


@dataclass
class OnboardingQuestion:
    """
    A multiple-choice onboarding question.

    ``answers`` maps an option key (``"A"``, ``"B"``...) to
    ``{"text": str, "tags": list[str]}``.
    """

    question: str
    answers: dict[str, dict[str, Any]]

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> OnboardingQuestion:
        return cls(question=doc['question'], answers=dict(doc.get('answers') or {}))
