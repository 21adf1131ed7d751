"""
SideQuest - Main Streamlit Application

Entry point for the SideQuest quest matching app. This module is the single
composition root: it builds the store, services and sweeper once per process
and wires the UI forms to them.
"""

import logging
from datetime import timedelta

import streamlit as st

from sidequest import analytics
from sidequest.auth import authenticate_user, register_user
from sidequest.catalog import QuestCatalog, is_joinable
from sidequest.config import Settings, load_settings
from sidequest.errors import (
    EmailTaken,
    NotFound,
    PreconditionFailed,
    RateLimitError,
    SideQuestError,
    StoreError,
)
from sidequest.feedback import FeedbackService
from sidequest.lifecycle import QuestLifecycle
from sidequest.matching import MatchEngine
from sidequest.models import QUESTS, UserPreferences, utcnow
from sidequest.onboarding import OnboardingScorer, load_questions
from sidequest.store import MemoryStore, SheetsStore
from sidequest.sweeper import Sweeper
from sidequest.ui_components import (
    render_active_quest,
    render_directory,
    render_feedback_form,
    render_onboarding,
    render_profile,
    render_quest_card,
    render_sidebar_auth,
)
from sidequest.users import UserDirectory

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Page configuration
st.set_page_config(
    page_title="SideQuest",
    page_icon="⚔️",
    layout="wide"
)


class Services:
    """Everything the pages need, built once per process."""

    def __init__(self, settings: Settings):
        self.settings = settings
        if settings.uses_sheets:
            self.store = SheetsStore.from_service_account(
                settings.gcp_service_account, settings.google_sheets_id
            )
        else:
            logger.warning("No Google Sheets configured, using in-memory store")
            self.store = MemoryStore()

        self.catalog = QuestCatalog(self.store)
        self.matcher = MatchEngine(
            self.store,
            self.catalog,
            quest_threshold=settings.quest_match_threshold,
            teammate_threshold=settings.teammate_threshold,
        )
        self.lifecycle = QuestLifecycle(
            self.store,
            completion_policy=settings.completion_policy,
            expiry=timedelta(hours=settings.expiry_hours),
        )
        self.directory = UserDirectory(self.store)
        self.feedback = FeedbackService(self.store)
        self.sweeper = Sweeper(
            self.catalog,
            self.lifecycle,
            interval_seconds=settings.sweep_interval_seconds,
            grace=timedelta(hours=settings.catalog_grace_hours),
        )

        if settings.seed_demo_data or not self.store.list(QUESTS):
            self.catalog.seed_demo_quests()
        self.sweeper.start()


@st.cache_resource
def get_services() -> Services:
    """Load settings from Streamlit secrets and build the services.

    Cached for the process so every session shares one store and one sweeper.
    """
    try:
        secrets = st.secrets.to_dict()
    except FileNotFoundError:
        secrets = {}
    return Services(load_settings(secrets))


def initialize_session_state():
    """Initialize Streamlit session state with default values.

    Session state fields:
    - authenticated: bool - Whether a user is signed in
    - user_id: str - Signed-in user's id
    - feedback_quest_id: str | None - Quest awaiting feedback
    - quest_events: list - Change notices pushed by store subscriptions
    - subscription: Subscription | None - Live listener on the active quest
    """
    defaults = {
        "authenticated": False,
        "user_id": "",
        "feedback_quest_id": None,
        "quest_events": [],
        "subscription": None,
        "subscribed_quest_id": None,
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value


def show_error(e: Exception) -> None:
    """Surface an error message to the user."""
    if isinstance(e, RateLimitError):
        st.error("System is busy. Please wait a moment and try again.")
    elif isinstance(e, StoreError):
        st.error("Unable to connect to database. Please try again.")
    elif isinstance(e, (NotFound, PreconditionFailed)):
        st.error(str(e))
    else:
        st.error("An unexpected error occurred. Please contact support.")


def handle_authentication(services: Services):
    """Handle sign-in / sign-up from the sidebar form."""
    if "auth_submission" not in st.session_state:
        return
    auth_data = st.session_state.pop("auth_submission")
    email = auth_data.get("email", "").strip()
    password = auth_data.get("password", "")

    if not email or not password:
        st.sidebar.error("Please enter both email and password")
        return

    try:
        if auth_data["mode"] == "signup":
            user = register_user(email, password, auth_data.get("display_name", ""), services.directory)
        else:
            user = authenticate_user(email, password, services.directory)
    except (ValueError, EmailTaken) as e:
        st.sidebar.error(str(e))
        return
    except SideQuestError as e:
        logger.error(f"Authentication error: {e}")
        st.sidebar.error("Unable to connect to database. Please try again.")
        return

    if user is None:
        st.sidebar.error("Invalid email or password")
        return

    st.session_state.authenticated = True
    st.session_state.user_id = user["id"]
    st.sidebar.success(f"Welcome, {user['displayName']}!")
    st.rerun()


def watch_active_quest(services: Services, quest_id: str | None):
    """Keep one store subscription on the user's active quest.

    The listener only appends to a plain list; the next rerun shows the notices.
    The store holds it weakly, so an abandoned session's listener goes away with
    its session state.
    """
    if st.session_state.subscribed_quest_id == quest_id:
        return
    if st.session_state.subscription is not None:
        st.session_state.subscription.unsubscribe()
        st.session_state.subscription = None
    st.session_state.subscribed_quest_id = quest_id
    if quest_id is None:
        return

    events = st.session_state.quest_events

    def on_change(doc_id, snapshot):
        if snapshot is None:
            events.append("Your quest was removed.")
        else:
            events.append(f"Quest update: {snapshot.get('currentTeamSize', 0)} members, {snapshot.get('status')}")

    st.session_state.subscription = services.store.subscribe(QUESTS, on_change, doc_id=quest_id, weak=True)


def handle_join(services: Services, user_id: str):
    if "join_submission" not in st.session_state:
        return
    submission = st.session_state.pop("join_submission")
    try:
        quest = services.lifecycle.join(
            submission["quest_id"], user_id, start_solo=submission.get("start_solo", False)
        )
    except SideQuestError as e:
        logger.error(f"Join failed for user {user_id}, quest {submission['quest_id']}: {e}")
        show_error(e)
        return

    analytics.send_quest_joined(quest.category, quest.status.value, services.settings.datadog_api_key)
    st.success(f"✅ You joined {quest.title}!")
    st.rerun()


def handle_complete(services: Services, user_id: str):
    if "complete_submission" not in st.session_state:
        return
    quest_id = st.session_state.pop("complete_submission")
    try:
        quest = services.catalog.get(quest_id)
        services.lifecycle.complete(quest_id, user_id)
    except SideQuestError as e:
        logger.error(f"Completion failed for user {user_id}, quest {quest_id}: {e}")
        show_error(e)
        return

    analytics.send_quest_completed(quest.category, quest.team_size, services.settings.datadog_api_key)
    st.session_state.feedback_quest_id = quest_id
    st.balloons()
    st.rerun()


def handle_form_team(services: Services, user_id: str):
    if "team_submission" not in st.session_state:
        return
    submission = st.session_state.pop("team_submission")
    if not submission["teammate_ids"]:
        st.warning("Pick at least one teammate to form a team")
        return
    try:
        team = services.matcher.form_team(user_id, submission["quest_id"], submission["teammate_ids"])
    except SideQuestError as e:
        logger.error(f"Team forming failed for user {user_id}, quest {submission['quest_id']}: {e}")
        show_error(e)
        return

    st.success(f"🤝 Party of {len(team['members'])} formed, team match {team['matchScore']}%")


def handle_onboarding(services: Services, user_id: str, scorer: OnboardingScorer):
    if "onboarding_submission" not in st.session_state:
        return
    answers = st.session_state.pop("onboarding_submission")
    try:
        traits = scorer.complete_onboarding(services.store, user_id, answers)
    except SideQuestError as e:
        logger.error(f"Onboarding failed for user {user_id}: {e}")
        show_error(e)
        return
    st.success(f"✨ Your top traits: {', '.join(sorted(traits, key=traits.get, reverse=True)[:3])}")


def handle_feedback(services: Services, user_id: str):
    if "feedback_submission" not in st.session_state:
        return
    form = st.session_state.pop("feedback_submission")
    try:
        doc = services.feedback.submit_feedback(user_id, form.pop("quest_id"), form)
    except SideQuestError as e:
        logger.error(f"Feedback failed for user {user_id}: {e}")
        show_error(e)
        return

    analytics.send_feedback_submitted(doc["enjoyment"], services.settings.datadog_api_key)
    st.session_state.feedback_quest_id = None
    st.success("🌱 Thanks for your feedback!")


def handle_preferences(services: Services, user: dict):
    if "preferences_submission" not in st.session_state:
        return
    changes = st.session_state.pop("preferences_submission")
    prefs = UserPreferences.from_doc({**(user.get("preferences") or {}), **changes})
    try:
        services.directory.update_user(user["id"], {"preferences": prefs.to_doc()})
    except SideQuestError as e:
        show_error(e)
        return
    st.success("Preferences saved")
    st.rerun()


def render_quest_board(services: Services, user: dict):
    st.header("🗺️ Quest Board")
    now = utcnow()
    has_active = bool(user.get("activeQuestId"))

    recommended = services.matcher.recommend_quests(
        user["id"], top_n=services.settings.recommendation_limit, now=now
    )
    scores = {match.quest.id: match.matchScore for match in recommended}

    if recommended:
        st.subheader("⭐ Recommended for you")
        for match in recommended:
            render_quest_card(match.quest, match.matchScore, now, can_join=not has_active)

    others = [q for q in services.catalog.list_joinable(now) if q.id not in scores]
    if others:
        st.subheader("🧭 All open quests")
        for quest in others:
            render_quest_card(quest, None, now, can_join=not has_active and is_joinable(quest, now))

    if not recommended and not others:
        st.info("No quests open right now. Check back soon!")


def main():
    """Main application entry point."""
    initialize_session_state()

    st.title("⚔️ SideQuest")

    try:
        services = get_services()
    except SideQuestError as e:
        st.error("Configuration error. Please contact the administrator.")
        logger.error(f"Failed to load configuration: {e}")
        return

    if not st.session_state.authenticated:
        render_sidebar_auth()
        handle_authentication(services)
        st.info("👈 Sign in or create an account using the sidebar to find your next quest!")
        return

    user_id = st.session_state.user_id
    try:
        user = services.directory.get_user(user_id)
    except SideQuestError as e:
        show_error(e)
        return

    st.sidebar.success(f"Signed in as: **{user.get('displayName', user_id)}**")
    st.sidebar.metric("Quests Completed", len(user.get("completedQuests") or []))
    if st.sidebar.button("Logout"):
        if st.session_state.subscription is not None:
            st.session_state.subscription.unsubscribe()
        for key in list(st.session_state.keys()):
            del st.session_state[key]
        st.rerun()

    watch_active_quest(services, user.get("activeQuestId"))
    while st.session_state.quest_events:
        st.toast(st.session_state.quest_events.pop(0))

    questions = load_questions(services.store)
    scorer = OnboardingScorer(questions)

    tabs = st.tabs(["🗺️ Quest Board", "🔥 Active Quest", "🧭 Onboarding", "📜 Profile", "👥 Adventurers"])

    with tabs[0]:
        render_quest_board(services, user)
        handle_join(services, user_id)

    with tabs[1]:
        if st.session_state.feedback_quest_id:
            render_feedback_form(st.session_state.feedback_quest_id)
            handle_feedback(services, user_id)
        elif user.get("activeQuestId"):
            try:
                quest = services.catalog.get(user["activeQuestId"])
                teammates = services.matcher.recommend_teammates(
                    user_id, quest.id, limit=services.settings.teammate_limit
                )
            except SideQuestError as e:
                show_error(e)
            else:
                render_active_quest(quest, teammates, utcnow())
                handle_form_team(services, user_id)
                handle_complete(services, user_id)
        else:
            st.info("No active quest. Pick one from the Quest Board!")

    with tabs[2]:
        render_onboarding(questions)
        handle_onboarding(services, user_id, scorer)

    with tabs[3]:
        render_profile(user)
        handle_preferences(services, user)

    with tabs[4]:
        render_directory(services.directory.list_users())


if __name__ == "__main__":
    main()
