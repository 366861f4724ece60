import uuid


def new_verification_id() -> str:
    return f"ver_{uuid.uuid4().hex}"


def new_challenge_id() -> str:
    return f"chg_{uuid.uuid4().hex}"
