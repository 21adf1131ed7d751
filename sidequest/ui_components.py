"""UI components module for SideQuest.

This module provides Streamlit UI rendering functions for the application views:
- Quest board cards with match scores and join forms
- Active quest card with team roster, teammate suggestions, team forming
  and completion
- Onboarding quiz and post-quest feedback forms
- Profile and adventurer directory
- Sidebar sign-in / sign-up form

Forms never act directly: submissions are parked in ``st.session_state``
under ``*_submission`` keys for the main app to process.
"""

from datetime import datetime

import streamlit as st

from sidequest.feedback import DIFFICULTY_CHOICES, SOCIAL_FIT_CHOICES, WOULD_REPEAT_CHOICES
from sidequest.models import OnboardingQuestion, Quest, QuestStatus, TeammateMatch


STATUS_DISPLAY = {
    QuestStatus.OPEN: "⚔️ Available",
    QuestStatus.FORMING: "🧭 Forming",
    QuestStatus.ACTIVE: "🔥 In Progress",
    QuestStatus.COMPLETED: "🏆 Completed",
    QuestStatus.EXPIRED: "⌛ Expired",
}

CATEGORY_ICONS = {
    "photography": "📸",
    "gardening": "🌱",
    "coding": "💻",
    "art": "🎨",
    "games": "🎮",
}


def status_label(status: QuestStatus) -> str:
    return STATUS_DISPLAY.get(status, status.value)


def quest_icon(category: str) -> str:
    return CATEGORY_ICONS.get(category, "⚔️")


def format_time_left(start: datetime | None, now: datetime) -> str:
    """Human countdown to a quest's start: "3 days", "2h 5m", "40m" or "Started"."""
    if start is None:
        return "No start time"
    diff = start - now
    if diff.total_seconds() <= 0:
        return "Started"

    hours = int(diff.total_seconds() // 3600)
    minutes = int(diff.total_seconds() % 3600 // 60)
    if hours > 24:
        return f"{hours // 24} days"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def render_quest_card(quest: Quest, match_score: float | None, now: datetime,
                      can_join: bool) -> None:
    """Render one quest on the board with a join form.

    Args:
        quest: Quest to show
        match_score: The viewer's match score, or None to hide it
        now: Reference time for the countdown
        can_join: Whether to offer the join form
    """
    with st.container(border=True):
        st.subheader(f"{quest_icon(quest.category)} {quest.title}")
        st.caption(f"{status_label(quest.status)} · starts in {format_time_left(quest.startTime, now)}")
        st.write(quest.description)

        col1, col2, col3 = st.columns(3)
        with col1:
            st.metric("Team", f"{quest.team_size}/{quest.maxTeamSize}")
        with col2:
            st.metric("Duration", f"{quest.durationHours:g}h")
        with col3:
            if match_score is not None:
                st.metric("Match", f"{match_score:.0f}%")

        st.write(f"📍 {quest.location or 'No location set'}")
        if quest.tags:
            st.write(" ".join(f"`{tag}`" for tag in quest.tags))

        if not can_join:
            return

        with st.form(key=f"join_{quest.id}_form"):
            start_solo = st.checkbox(
                "Start right away without waiting for teammates",
                key=f"join_{quest.id}_solo"
            )
            if st.form_submit_button("Join Quest"):
                st.session_state["join_submission"] = {
                    "quest_id": quest.id,
                    "start_solo": start_solo,
                }


def render_active_quest(quest: Quest, teammates: list[TeammateMatch], now: datetime) -> None:
    """Render the user's active quest with roster, suggestions, team forming and completion."""
    st.header(f"{quest_icon(quest.category)} {quest.title}")
    st.caption(status_label(quest.status))
    st.write(quest.description)

    if quest.endTime is not None:
        st.info(f"⏳ Wraps up in {format_time_left(quest.endTime, now)}")

    st.subheader(f"👥 Party ({quest.team_size}/{quest.maxTeamSize})")
    for member in quest.teamMembers:
        st.write(f"- {member.displayName}")

    if quest.team_size < quest.maxTeamSize:
        render_teammates(quest.id, teammates)

    if st.button("🏁 Complete Quest", key=f"complete_{quest.id}"):
        st.session_state["complete_submission"] = quest.id


def teammate_label(teammate: TeammateMatch) -> str:
    return f"{teammate.displayName} ({teammate.combinedScore:.0f}%)"


def team_submission(quest_id: str, teammates: list[TeammateMatch], chosen_ids: list[str]) -> dict:
    """Build the ``team_submission`` payload, keeping suggestion order and dropping unknown ids."""
    chosen = set(chosen_ids)
    return {
        "quest_id": quest_id,
        "teammate_ids": [t.userId for t in teammates if t.userId in chosen],
    }


def render_teammates(quest_id: str, teammates: list[TeammateMatch]) -> None:
    st.subheader("🤝 Suggested teammates")
    if not teammates:
        st.write("No strong matches right now. Check back soon!")
        return

    for teammate in teammates:
        with st.container(border=True):
            st.write(f"**{teammate.displayName}**")
            st.write(
                f"{teammate.compatibilityScore:.0f}% compatible · "
                f"{teammate.questMatchScore:.0f}% quest match"
            )
            st.caption(f"Skill level {teammate.preferences.skillLevel}")
            if teammate.preferences.interests:
                st.write(" ".join(f"`{i}`" for i in teammate.preferences.interests))

    with st.form(key=f"team_{quest_id}_form"):
        labels = {t.userId: teammate_label(t) for t in teammates}
        chosen = st.multiselect(
            "Invite to your party",
            list(labels),
            default=list(labels),
            format_func=labels.get,
            key=f"team_{quest_id}_members"
        )
        if st.form_submit_button("Form Team"):
            st.session_state["team_submission"] = team_submission(quest_id, teammates, chosen)


def render_onboarding(questions: list[OnboardingQuestion]) -> None:
    """Render the personality quiz as one form."""
    st.header("🧭 Who are you, adventurer?")
    st.write("Answer a few quick questions so we can find quests that suit you.")

    with st.form(key="onboarding_form"):
        answers = []
        for index, question in enumerate(questions):
            options = list(question.answers.keys())
            choice = st.radio(
                question.question,
                options,
                format_func=lambda key, q=question: f"{key}. {q.answers[key]['text']}",
                key=f"onboarding_q{index}"
            )
            answers.append(choice)

        if st.form_submit_button("Finish"):
            st.session_state["onboarding_submission"] = answers


def render_feedback_form(quest_id: str) -> None:
    """Render the post-quest feedback form."""
    st.header("🌿 Share Your SideQuest Experience")

    with st.form(key="feedback_form"):
        enjoyment = st.slider("Enjoyment", min_value=1, max_value=5, value=3)
        difficulty = st.selectbox("Difficulty", DIFFICULTY_CHOICES)
        social_fit = st.selectbox("How well did the group click?", SOCIAL_FIT_CHOICES)
        would_repeat = st.selectbox("Would you do it again?", WOULD_REPEAT_CHOICES)
        comments = st.text_area("Additional Comments", max_chars=1000)

        if st.form_submit_button("Submit Feedback 🌱"):
            st.session_state["feedback_submission"] = {
                "quest_id": quest_id,
                "enjoyment": enjoyment,
                "difficulty": difficulty,
                "socialFit": social_fit,
                "wouldRepeat": would_repeat,
                "comments": comments,
            }


def render_profile(user: dict) -> None:
    """Render the user's character sheet: preferences, traits and history."""
    st.header("📜 Character Sheet")
    st.subheader(user.get('displayName', 'Unknown'))

    prefs = user.get('preferences') or {}
    completed = user.get('completedQuests') or []

    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("Quests Completed", len(completed))
    with col2:
        st.metric("Skill Level", prefs.get('skillLevel', 1))
    with col3:
        st.metric("Preferred Team Size", prefs.get('preferredTeamSize', 2))

    with st.form(key="preferences_form"):
        interests = st.text_input(
            "Interests (comma separated)",
            value=", ".join(prefs.get('interests') or [])
        )
        skill = st.slider("Skill level", 1, 5, int(prefs.get('skillLevel', 1)))
        team_size = st.number_input("Preferred team size", 1, 10, int(prefs.get('preferredTeamSize', 2)))
        hours = st.number_input("Hours available per week", 0.0, 80.0,
                                float(prefs.get('availableHoursPerWeek', 5)))
        if st.form_submit_button("Save Preferences"):
            st.session_state["preferences_submission"] = {
                "interests": [i.strip() for i in interests.split(",") if i.strip()],
                "skillLevel": skill,
                "preferredTeamSize": int(team_size),
                "availableHoursPerWeek": hours,
            }

    st.divider()
    st.subheader("✨ Traits")
    traits = prefs.get('personalityTraits') or {}
    if traits:
        for trait, weight in sorted(traits.items(), key=lambda item: -item[1]):
            st.write(f"- **{trait}**: {weight:g}")
    else:
        st.info("⏳ Take the onboarding quiz to discover your traits")

    st.divider()
    st.subheader("🏆 Completed Quests")
    if not completed:
        st.info("No completed quests yet")
    for entry in reversed(completed):
        st.write(f"- {entry.get('title')} (party of {entry.get('teamSize')}) · {entry.get('completedAt')}")


def render_directory(users: list[dict]) -> None:
    """Render every adventurer."""
    st.header("👥 Adventurers")
    for user in users:
        completed = len(user.get('completedQuests') or [])
        state = "on a quest" if user.get('activeQuestId') else "available"
        st.write(f"- **{user.get('displayName', user['id'])}** · {state} · {completed} quests completed")


def render_sidebar_auth() -> None:
    """Render sign-in / sign-up form in sidebar.

    Stores input in session state for processing by main app.
    """
    st.sidebar.header("🎮 Adventurer Login")

    mode = st.sidebar.radio("Mode", ["Sign in", "Create account"], key="auth_mode")

    with st.sidebar.form(key="auth_form"):
        display_name = ""
        if mode == "Create account":
            display_name = st.text_input("Display name:", max_chars=50, key="auth_display_name_input")

        email = st.text_input("Email:", max_chars=100, key="auth_email_input")
        password = st.text_input("Password:", type="password", max_chars=100, key="auth_password_input")

        if st.form_submit_button(mode):
            st.session_state["auth_submission"] = {
                "mode": "signup" if mode == "Create account" else "signin",
                "display_name": display_name,
                "email": email,
                "password": password,
            }
