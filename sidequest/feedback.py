"""Post-quest feedback for SideQuest.

Feedback is stored as-is and also nudges the user's personality traits
toward (or away from) the tags of the quest they just finished.
"""

import logging
import uuid
from datetime import datetime
from typing import Any

from sidequest.errors import InvalidFeedback, NotFound, UserNotFound
from sidequest.models import FEEDBACK, QUESTS, USERS, UserPreferences, to_iso, utcnow
from sidequest.store import DocumentStore

logger = logging.getLogger(__name__)

DIFFICULTY_CHOICES = ("too_easy", "just_right", "too_hard")
SOCIAL_FIT_CHOICES = ("great", "okay", "awkward")
WOULD_REPEAT_CHOICES = ("yes", "maybe", "no")
MAX_COMMENT_LENGTH = 1000

# Share of a quest trait applied to the profile per rating
TRAIT_STEP = 0.2


def validate_feedback(form: dict[str, Any]) -> dict[str, Any]:
    """Check a feedback form and return the cleaned values.

    Raises:
        InvalidFeedback: With a message naming the offending field
    """
    try:
        enjoyment = int(form.get('enjoyment'))
    except (TypeError, ValueError) as e:
        raise InvalidFeedback("Enjoyment must be a number from 1 to 5") from e
    if not 1 <= enjoyment <= 5:
        raise InvalidFeedback("Enjoyment must be a number from 1 to 5")

    choices = {
        'difficulty': DIFFICULTY_CHOICES,
        'socialFit': SOCIAL_FIT_CHOICES,
        'wouldRepeat': WOULD_REPEAT_CHOICES,
    }
    cleaned: dict[str, Any] = {'enjoyment': enjoyment}
    for field, allowed in choices.items():
        value = form.get(field)
        if value not in allowed:
            raise InvalidFeedback(f"{field} must be one of: {', '.join(allowed)}")
        cleaned[field] = value

    comments = (form.get('comments') or '').strip()
    if len(comments) > MAX_COMMENT_LENGTH:
        raise InvalidFeedback(
            f"Comments must be at most {MAX_COMMENT_LENGTH} characters (current: {len(comments)})"
        )
    cleaned['comments'] = comments
    return cleaned


def update_profile(traits: dict[str, float], enjoyment: int,
                   quest_traits: dict[str, float]) -> dict[str, float]:
    """Adjust a trait profile after a quest.

    Enjoyment of 4 or 5 adds 20% of each quest trait's weight, 1 or 2
    subtracts it, 3 leaves the profile unchanged.

    Returns:
        A new trait mapping; the input is not modified
    """
    updated = dict(traits)
    liked = enjoyment >= 4
    disliked = enjoyment <= 2

    for trait, weight in quest_traits.items():
        if liked:
            updated[trait] = updated.get(trait, 0) + weight * TRAIT_STEP
        elif disliked:
            updated[trait] = updated.get(trait, 0) - weight * TRAIT_STEP
    return updated


class FeedbackService:
    """Stores feedback and applies it to user profiles."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def submit_feedback(self, user_id: str, quest_id: str, form: dict[str, Any],
                        now: datetime | None = None) -> dict:
        """
        Validate and store feedback, then update the user's traits.

        The quest may already have been swept away; feedback is still stored
        but the profile is left alone.

        Returns:
            The stored feedback document (with ``id``)

        Raises:
            InvalidFeedback: If the form is invalid
            UserNotFound: If the user doesn't exist
        """
        cleaned = validate_feedback(form)
        now = now or utcnow()
        feedback_id = uuid.uuid4().hex

        def _submit(txn) -> dict:
            user = txn.get(USERS, user_id)
            if user is None:
                raise UserNotFound(user_id)

            doc = {
                'userId': user_id,
                'questId': quest_id,
                **cleaned,
                'submittedAt': to_iso(now),
            }

            quest = txn.get(QUESTS, quest_id)
            if quest is not None:
                prefs = UserPreferences.from_doc(user.get('preferences'))
                quest_traits = {tag: 1 for tag in quest.get('tags') or []}
                prefs.personalityTraits = update_profile(
                    prefs.personalityTraits, cleaned['enjoyment'], quest_traits
                )
                txn.update(USERS, user_id, {
                    'preferences': prefs.to_doc(),
                    'updatedAt': to_iso(now),
                })
            txn.set(FEEDBACK, feedback_id, doc)
            return doc

        doc = self.store.run_transaction(_submit)
        logger.info(f"Feedback {feedback_id} from {user_id} on quest {quest_id}")
        return {'id': feedback_id, **doc}

    def list_feedback(self, quest_id: str | None = None) -> list[dict]:
        docs = self.store.list(FEEDBACK)
        if quest_id is not None:
            docs = [d for d in docs if d.get('questId') == quest_id]
        return docs

    def get_feedback(self, feedback_id: str) -> dict:
        doc = self.store.get(FEEDBACK, feedback_id)
        if doc is None:
            raise NotFound("Feedback not found")
        return doc
