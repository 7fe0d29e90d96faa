# ----- trainer_calendar/auth.py -----
import streamlit as st


def login(admins=frozenset()):
    """Sign-in pane; ``admins`` may remove clients and delete finished packages."""
    email = st.text_input("Email").strip().lower()
    if st.button("Sign in"):
        st.session_state["user"] = email
        st.session_state["is_admin"] = email in admins
