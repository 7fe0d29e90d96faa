import json
from datetime import date

from trainer_calendar.engine import BookingEngine

# ---- JSON schemas shown to the model -------------------------------
openai_tools = [
    {
        "type": "function",
        "function": {
            "name": "create_booking",
            "description": "Book a training session for a client from their active package",
            "parameters": {
                "type": "object",
                "properties": {
                    "date_iso": {"type": "string", "description": "YYYY-MM-DD"},
                    "hour": {"type": "integer", "description": "Hour of day, base time zone"},
                    "client_name": {"type": "string"},
                },
                "required": ["date_iso", "hour", "client_name"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "cancel_booking",
            "description": "Cancel the session booked at a date and hour",
            "parameters": {
                "type": "object",
                "properties": {
                    "date_iso": {"type": "string"},
                    "hour": {"type": "integer"},
                },
                "required": ["date_iso", "hour"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "list_week",
            "description": "Return every booked session in the week containing a date",
            "parameters": {
                "type": "object",
                "properties": {"date_iso": {"type": "string"}},
                "required": ["date_iso"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "client_status",
            "description": "Return a client's packages and how many sessions are used",
            "parameters": {
                "type": "object",
                "properties": {"client_name": {"type": "string"}},
                "required": ["client_name"],
            },
        },
    },
]


# ---- Python side ----------------------------------------------------
def make_functions(engine: BookingEngine) -> dict:
    ledger = engine.ledger

    def create_booking(date_iso, hour, client_name):
        b = engine.create_booking(date_iso, hour, client_name)
        pkg = ledger.get(b.package_id)
        return {"booked": f"{b.date_iso} {b.hour:02d}:00", "client": b.client_name,
                "session": f"{b.session_number}/{pkg.size}"}

    def cancel_booking(date_iso, hour):
        found = engine.bookings_at(date_iso, hour)
        if not found:
            return {"error": f"Nothing booked at {date_iso} {int(hour):02d}:00"}
        b = engine.cancel_booking(found[0].id)
        return {"cancelled": f"{b.date_iso} {b.hour:02d}:00", "client": b.client_name}

    def list_week(date_iso):
        anchor = date.fromisoformat(date_iso)
        return {
            f"{b.date_iso} {b.hour:02d}:00": f"{b.client_name} #{b.session_number}"
            for b in engine.bookings_for_week(anchor)
        }

    def client_status(client_name):
        summary = ledger.client_summary(client_name)
        return {
            "active": summary.status,
            "shared_with": list(summary.shared_with),
            "packages": [f"{p.progress} bought {p.added_iso}" for p in summary.packages],
        }

    return {
        "create_booking": create_booking,
        "cancel_booking": cancel_booking,
        "list_week": list_week,
        "client_status": client_status,
    }


def call_tool(functions: dict, name: str, raw_args: str | None) -> str:
    """Run one tool call and return the JSON string sent back to the model."""
    if name not in functions:
        return json.dumps({"error": f"Unknown tool {name}"})
    try:
        args = json.loads(raw_args or "{}")
        result = functions[name](**args)
    except (ValueError, TypeError) as e:
        # CalendarError is a ValueError: rule violations go back to the model as text
        result = {"error": str(e)}
    return json.dumps("✅ Done" if result is None else result, ensure_ascii=False)
