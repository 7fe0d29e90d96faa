"""
main.py  –  Streamlit trainer calendar with an optional ChatGPT assistant
────────────────────────────────────────────────────────────────
Run:
    streamlit run main.py

Configuration comes from the environment / .env (see trainer_calendar.config):
    STORE_BACKEND=local|firestore, PACKAGE_SIZES, FIRST_HOUR, HOUR_COUNT,
    SECONDARY_TZ_OFFSET, ADMIN_EMAILS, ASSISTANT_ENABLED, ...
"""

import logging
from datetime import date

import openai
import streamlit as st

# local helper modules
from trainer_calendar import PaymentBook, build_calendar, load_settings
from trainer_calendar.auth import login
from trainer_calendar.config import get_openai_key
from trainer_calendar.errors import PersistenceError
from trainer_calendar.llm_funcs import call_tool, make_functions, openai_tools
from trainer_calendar.payments import month_key

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


st.set_page_config(page_title="Trainer calendar", page_icon="📅", layout="wide")


# ───────────────────────────────────────────────────────────────
# 1.  Settings + calendar core (one per server process)
# ───────────────────────────────────────────────────────────────
@st.cache_resource
def get_calendar():
    settings = load_settings()
    return settings, build_calendar(settings)


settings, engine = get_calendar()
ledger = engine.ledger
index = engine.index
payments = PaymentBook(engine.store)


def run_action(action, success=None):
    """Run a calendar mutation and report the outcome; rerun on success."""
    try:
        action()
    except PersistenceError as e:
        st.error(f"Storage unavailable, try again: {e}")
        return
    except ValueError as e:
        st.error(str(e))
        return
    if success:
        st.toast(success)
    st.rerun()


# ───────────────────────────────────────────────────────────────
# 2.  Very small login pane (email + admin flag)
# ───────────────────────────────────────────────────────────────
login(settings.admin_emails)
if "user" not in st.session_state:
    st.stop()                      # wait until user clicks “Sign in”
is_admin = st.session_state["is_admin"]


# ───────────────────────────────────────────────────────────────
# 3.  Week navigation
# ───────────────────────────────────────────────────────────────
st.title("📅  Trainer calendar")

if "anchor" not in st.session_state:
    st.session_state["anchor"] = date.today()

prev_col, today_col, next_col, _ = st.columns([1, 1, 1, 6])
if prev_col.button("←"):
    st.session_state["anchor"] = index.shift_week(st.session_state["anchor"], -1)
if today_col.button("Today"):
    st.session_state["anchor"] = date.today()
if next_col.button("→"):
    st.session_state["anchor"] = index.shift_week(st.session_state["anchor"], 1)

anchor = st.session_state["anchor"]

# previous / current / next week strip
for col, week in zip(st.columns(3), index.visible_weeks(anchor)):
    label = f"{week[0]:%d %b} → {week[-1]:%d %b}"
    if anchor in week:
        col.markdown(f"**{label}**")
    elif col.button(label, key=f"week_{week[0].isoformat()}"):
        st.session_state["anchor"] = week[0]
        st.rerun()

days = index.week_days(anchor)


# ───────────────────────────────────────────────────────────────
# 4.  Week grid: two hour-label columns + seven day columns
# ───────────────────────────────────────────────────────────────
week_bookings = engine.bookings_for_week(anchor)
slots = index.by_slot(week_bookings)
hours = index.grid_hours(week_bookings, days)

header = st.columns([1, 1] + [2] * 7)
header[0].markdown(f"**{settings.base_zone_label}**")
header[1].markdown(f"**{settings.secondary_zone_label}**")
for col, day in zip(header[2:], days):
    label = day.strftime("%a %d %b") + (" 🏖" if index.is_weekend(day) else "")
    col.markdown(f"**{label}**" if day == date.today() else label)

for hour, base_label, secondary_label in index.hour_rows(hours):
    row = st.columns([1, 1] + [2] * 7)
    row[0].write(base_label)
    row[1].write(secondary_label)
    for col, day in zip(row[2:], days):
        booking = slots.get((day.isoformat(), hour))
        key = f"{day.isoformat()}_{hour}"
        if booking:
            if col.button(f"{booking.client_name} #{booking.session_number}", key=f"b_{key}"):
                st.session_state["selected"] = booking.id
        elif index.is_bookable(hour):
            if col.button("·", key=f"f_{key}"):
                st.session_state["slot"] = (day, hour)


# ── booking form for the picked free slot
if "slot" in st.session_state:
    day, hour = st.session_state["slot"]
    st.subheader(f"New session: {day:%d %b (%a)} {hour:02d}:00 / {index.secondary_hour(hour):02d}:00")
    active = ledger.active_clients()
    client = st.selectbox("Client", active, index=0 if active else None)
    ok_col, cancel_col, _ = st.columns([1, 1, 6])
    if ok_col.button("Book"):
        del st.session_state["slot"]
        run_action(lambda: engine.create_booking(day, hour, client or ""), "Booked!")
    if cancel_col.button("Close"):
        del st.session_state["slot"]
        st.rerun()

# ── cancel a selected booking
if "selected" in st.session_state:
    booking_id = st.session_state["selected"]
    st.warning(f"Cancel booking {booking_id}?")
    yes_col, no_col, _ = st.columns([1, 1, 6])
    if yes_col.button("Cancel booking"):
        del st.session_state["selected"]
        run_action(lambda: engine.cancel_booking(booking_id), "Booking cancelled")
    if no_col.button("Keep"):
        del st.session_state["selected"]
        st.rerun()

st.divider()


# ───────────────────────────────────────────────────────────────
# 5.  Clients and packages
# ───────────────────────────────────────────────────────────────
st.header("👥 Clients")

for name in ledger.client_names():
    summary = ledger.client_summary(name)
    with st.expander(f"{name} → {summary.status}"):
        if summary.shared_with:
            st.caption("Shared package with: " + ", ".join(summary.shared_with))
        for pkg in summary.packages:
            st.write(f"{pkg.progress}, bought {pkg.added_iso}")
            history = engine.bookings_for_package(pkg.id, name)
            if not history:
                st.caption("No sessions yet")
            for b in history:
                st.caption(f"{b.session_number} / {pkg.size}: {b.date_iso} {b.hour:02d}:00")
            if is_admin and pkg.is_complete and st.button("Delete package", key=f"del_{pkg.id}_{name}"):
                run_action(lambda pid=pkg.id: ledger.delete_package(pid), "Package deleted")
        if summary.is_primary and st.button("+ package", key=f"new_{name}"):
            st.session_state["package_owner"] = ", ".join((name,) + summary.shared_with)
        if is_admin and st.button("Remove client", key=f"rm_{name}"):
            run_action(lambda n=name: ledger.remove_client(n), f"{name} removed")

with st.form("package"):
    st.subheader("Sell a package")
    owner = st.text_input(
        "Client name (several, comma separated, for a shared package)",
        value=st.session_state.get("package_owner", ""),
    )
    sizes = list(settings.package_sizes)
    size = st.selectbox("Sessions", sizes, index=sizes.index(10) if 10 in sizes else 0)
    if st.form_submit_button("Save package"):
        st.session_state.pop("package_owner", None)
        run_action(lambda: ledger.purchase_package(owner, size), "Package saved")

st.divider()


# ───────────────────────────────────────────────────────────────
# 6.  Payments for the viewed month
# ───────────────────────────────────────────────────────────────
month = month_key(anchor)
st.header(f"💳 Payments {month}")

for name, items in payments.for_month(month).items():
    st.write(f"**{name}**: " + ", ".join(f"{p.amount} ({p.day})" for p in items))
    if is_admin:
        for p in items:
            if st.button(f"✕ {p.amount} ({p.day})", key=f"pay_{p.id}"):
                run_action(lambda pid=p.id: payments.delete(pid), "Payment deleted")

with st.form("payment"):
    client_names = ledger.client_names()
    pay_client = st.selectbox("Client", client_names, index=0 if client_names else None)
    amount = st.text_input("Amount")
    day_of_month = st.number_input("Day", min_value=1, max_value=31, value=anchor.day)
    if st.form_submit_button("Add payment"):
        run_action(lambda: payments.record(pay_client or "", amount, day_of_month, month), "Payment saved")


# ───────────────────────────────────────────────────────────────
# 7.  ChatGPT assistant with OpenAI 1.x client & function calling
# ───────────────────────────────────────────────────────────────
if not settings.assistant_enabled:
    st.stop()

st.header("💬 Assistant")
openai.api_key = get_openai_key(settings)
FUNCTIONS = make_functions(engine)

# initialise message history once per session
if "messages" not in st.session_state:
    st.session_state.messages = [
        {
            "role": "system",
            "content": (
                "You are the assistant of a personal trainer. "
                f"Today is {date.today().isoformat()}. "
                f"Sessions start on the hour between {settings.hours[0]:02d}:00 "
                f"and {settings.hours[-1]:02d}:00. "
                "Use the tools to book, cancel and look up sessions; "
                "report tool errors to the trainer as they are."
            ),
        }
    ]


def _append_chat(msg_obj):
    """
    Convert ChatCompletionMessage → plain dict and store in
    st.session_state.messages (needed because Streamlit JSON‑serialises)
    """
    item = {"role": msg_obj.role}
    if msg_obj.content:
        item["content"] = msg_obj.content
    if msg_obj.tool_calls:
        item["tool_calls"] = [tc.model_dump() for tc in msg_obj.tool_calls]
    st.session_state.messages.append(item)
    return item


# render past conversation
for m in st.session_state.messages[1:]:
    if m["role"] != "tool":
        st.chat_message(m["role"]).write(m.get("content", str(m.get("tool_calls", ""))))


# user prompt
if prompt := st.chat_input("Ask me to book or cancel a session…"):
    st.session_state.messages.append({"role": "user", "content": prompt})
    st.chat_message("user").write(prompt)

    # ── 1️⃣  first call to GPT – may include tool_calls
    resp = openai.chat.completions.create(
        model=settings.openai_model,
        messages=st.session_state.messages,
        tools=openai_tools,
        tool_choice="auto",
    )
    assistant_msg = resp.choices[0].message
    _append_chat(assistant_msg)

    # ── 2️⃣  execute each requested tool, if any
    if assistant_msg.tool_calls:
        for call in assistant_msg.tool_calls:
            fn_name = call.function.name
            logger.info("Assistant tool call %s(%s)", fn_name, call.function.arguments)

            result = call_tool(FUNCTIONS, fn_name, call.function.arguments)

            # build tool‑response message **and keep it in history**
            st.session_state.messages.append(
                {
                    "role": "tool",
                    "tool_call_id": call.id,
                    "name": fn_name,
                    "content": result,
                }
            )

        # ── 3️⃣  second GPT call so it can craft a natural reply
        follow_up = openai.chat.completions.create(
            model=settings.openai_model,
            messages=st.session_state.messages,
        )
        final_msg = follow_up.choices[0].message
        _append_chat(final_msg)
        st.chat_message("assistant").write(final_msg.content)
    else:
        # simple answer with no tools
        st.chat_message("assistant").write(assistant_msg.content)
