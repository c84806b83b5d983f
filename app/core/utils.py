import secrets

def generate_room_id() -> str:
    # room_ + 12 hex chars, only ever shared with the session participants
    return f"room_{secrets.token_hex(6)}"

def generate_sender_name(name: str | None, role: str) -> str:
    name = (name or "").strip()
    if not name:
        return "User"
    if role == "veterinarian" and not name.startswith("Dr. "):
        return f"Dr. {name}"
    return name
