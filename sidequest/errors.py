"""
Error taxonomy for SideQuest.

Every error carries a human-readable message that the UI shows verbatim.
"""


class SideQuestError(Exception):
    """Base class for all SideQuest errors."""
    pass


class ConfigurationError(SideQuestError):
    """Raised when settings are missing or invalid."""
    pass


# Entity absent

class NotFound(SideQuestError):
    """Raised when a requested entity does not exist."""
    pass


class DocumentNotFound(NotFound):
    """Raised when a store document does not exist."""

    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"Document '{collection}/{doc_id}' not found")
        self.collection = collection
        self.doc_id = doc_id


class QuestNotFound(NotFound):
    """Raised when a quest does not exist."""

    def __init__(self, quest_id: str):
        super().__init__("Quest not found")
        self.quest_id = quest_id


class UserNotFound(NotFound):
    """Raised when a user does not exist."""

    def __init__(self, user_id: str):
        super().__init__("User not found")
        self.user_id = user_id


# Preconditions

class PreconditionFailed(SideQuestError):
    """Raised when an operation is not allowed in the current state."""
    pass


class QuestUnavailable(PreconditionFailed):
    pass


class AlreadyActive(PreconditionFailed):
    pass


class AlreadyJoined(PreconditionFailed):
    pass


class TeamFull(PreconditionFailed):
    pass


class NotAMember(PreconditionFailed):
    pass


class EmailTaken(PreconditionFailed):
    pass


class InvalidAnswer(PreconditionFailed):
    pass


class InvalidFeedback(PreconditionFailed):
    pass


class InvalidQuest(PreconditionFailed):
    pass


# Store

class StoreError(SideQuestError):
    """Base class for document store failures."""
    pass


class StoreUnavailable(StoreError):
    """Raised when the document store cannot be reached."""
    pass


class RateLimitError(StoreUnavailable):
    """Raised when Google Sheets API keeps returning rate limit errors."""
    pass


class ConflictError(StoreError):
    """Raised when a transaction read a document that changed before commit."""
    pass
