import secrets, string
ALPHABET = string.ascii_lowercase + string.digits

def generate_room_id(length: int = 6) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))

def is_valid_room_id(room_id: str, length: int = 6) -> bool:
    return len(room_id) == length and all(c in ALPHABET for c in room_id)

def normalize_username(raw: str) -> str:
    return raw.strip().lstrip("@").lower()
