"""Onboarding quiz for SideQuest.

A fixed sequence of multiple-choice questions. Each answer carries tags; the
tally of tags across all answers becomes the user's personality traits.
"""

import logging
from collections.abc import Sequence
from datetime import datetime

from sidequest.errors import InvalidAnswer, UserNotFound
from sidequest.models import ONBOARDING_QUESTIONS, USERS, OnboardingQuestion, UserPreferences, to_iso, utcnow
from sidequest.store import DocumentStore

logger = logging.getLogger(__name__)


# Built-in question set, used when the onboardingQuestions collection is empty
QUESTIONS = [
    OnboardingQuestion(
        question="It's a free Saturday morning. Where are you?",
        answers={
            "A": {"text": "Out for a run or a hike", "tags": ["outdoorsy", "active"]},
            "B": {"text": "Brunch with a big group of friends", "tags": ["social", "team"]},
            "C": {"text": "Curled up with a book and a hot drink", "tags": ["cozy", "introvert", "recharging"]},
            "D": {"text": "Working on a side project", "tags": ["creative", "motivated"]},
        },
    ),
    OnboardingQuestion(
        question="How do you like to tackle a new challenge?",
        answers={
            "A": {"text": "Make a plan and follow it", "tags": ["structured", "motivated"]},
            "B": {"text": "Dive in and figure it out as I go", "tags": ["active", "creative"]},
            "C": {"text": "Talk it through with others first", "tags": ["social", "team"]},
            "D": {"text": "Think quietly on my own", "tags": ["reflective", "solo"]},
        },
    ),
    OnboardingQuestion(
        question="Pick a group size for your ideal hangout.",
        answers={
            "A": {"text": "Just me", "tags": ["solo", "introvert"]},
            "B": {"text": "Two or three close friends", "tags": ["cozy", "team"]},
            "C": {"text": "The more the merrier", "tags": ["social"]},
        },
    ),
    OnboardingQuestion(
        question="Which of these sounds most fun?",
        answers={
            "A": {"text": "Painting a mural", "tags": ["creative", "tactile"]},
            "B": {"text": "A sunrise jog around campus", "tags": ["outdoorsy", "active", "motivated"]},
            "C": {"text": "Board game night", "tags": ["social", "light-hearted"]},
            "D": {"text": "Journaling in the gardens", "tags": ["reflective", "outdoorsy", "solo"]},
        },
    ),
    OnboardingQuestion(
        question="After a long week you recharge by...",
        answers={
            "A": {"text": "Going out", "tags": ["social", "active"]},
            "B": {"text": "A movie night in", "tags": ["cozy", "recharging"]},
            "C": {"text": "Getting some fresh air", "tags": ["outdoorsy", "recharging"]},
            "D": {"text": "Making something with my hands", "tags": ["creative", "tactile"]},
        },
    ),
]


def load_questions(store: DocumentStore) -> list[OnboardingQuestion]:
    """Questions from the store, ordered by their ``order`` field, or the built-in set."""
    docs = store.list(ONBOARDING_QUESTIONS)
    if not docs:
        return list(QUESTIONS)
    docs.sort(key=lambda d: d.get('order', 0))
    return [OnboardingQuestion.from_doc(doc) for doc in docs]


class OnboardingScorer:
    """Turns quiz answers into a trait tally."""

    def __init__(self, questions: Sequence[OnboardingQuestion] | None = None):
        self.questions = list(questions) if questions is not None else list(QUESTIONS)

    def tally(self, answers: Sequence[str]) -> dict[str, int]:
        """
        Count tags across answered questions.

        Args:
            answers: Option keys in question order; answers past the last
                question are ignored

        Returns:
            Mapping of tag to the number of times it was picked

        Raises:
            InvalidAnswer: If an option key doesn't exist for its question

        Example:
            >>> OnboardingScorer().tally(["A", "A"])
            {'outdoorsy': 1, 'active': 1, 'structured': 1, 'motivated': 1}
        """
        counts: dict[str, int] = {}
        for question, option in zip(self.questions, answers):
            choice = question.answers.get(option)
            if choice is None:
                raise InvalidAnswer(f"'{option}' is not an option for: {question.question}")
            for tag in choice.get('tags', []):
                counts[tag] = counts.get(tag, 0) + 1
        return counts

    def complete_onboarding(self, store: DocumentStore, user_id: str, answers: Sequence[str],
                            now: datetime | None = None) -> dict[str, int]:
        """
        Tally the answers and save them as the user's personality traits.

        Raises:
            InvalidAnswer: If fewer answers than questions, or an unknown option
            UserNotFound: If the user doesn't exist
        """
        if len(answers) < len(self.questions):
            raise InvalidAnswer(
                f"Please answer all {len(self.questions)} questions (got {len(answers)})"
            )
        traits = self.tally(answers)
        now = now or utcnow()

        def _save(txn):
            user = txn.get(USERS, user_id)
            if user is None:
                raise UserNotFound(user_id)
            prefs = UserPreferences.from_doc(user.get('preferences'))
            prefs.personalityTraits = dict(traits)
            txn.update(USERS, user_id, {
                'preferences': prefs.to_doc(),
                'onboardedAt': to_iso(now),
                'updatedAt': to_iso(now),
            })

        store.run_transaction(_save)
        logger.info(f"User {user_id} completed onboarding with {len(traits)} traits")
        return traits
