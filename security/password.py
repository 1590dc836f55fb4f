import bcrypt

def hash_password(plain_password: str, rounds: int = 12) -> str:
    if not isinstance(plain_password, str) or len(plain_password) == 0:
        raise ValueError("Password must be a non-empty string")

    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")

def verify_password(plain_password: str, password_hash: str) -> bool:
    if not plain_password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False

def password_problems(plain_password, min_length: int) -> list:
    problems = []
    if not isinstance(plain_password, str):
        return ["Password must be a string"]
    if len(plain_password) < min_length:
        problems.append(f"Password must be at least {min_length} characters")
    if len(plain_password.encode("utf-8")) > 72:
        problems.append("Password must be at most 72 bytes")
    return problems
