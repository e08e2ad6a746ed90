import random
import time
import uuid


def new_key() -> str:
    """
    Idempotency key for one logical user action. Generate it once, before the
    first attempt, and reuse it for every retry of that action.
    """
    try:
        return str(uuid.uuid4())
    except NotImplementedError:
        # os.urandom has no entropy source on this platform
        return f"expense-{time.time_ns()}-{random.getrandbits(64):016x}"
