"""
Identifier generation using UUIDv7-style time-ordered ids

Session and registration ids sort by creation time, which keeps the ledger's
natural order close to registration order and makes ids usable as a final
tie-breaker.
"""

import secrets
import time


def generate_id() -> str:
    """
    Generate a UUIDv7-like identifier (time-ordered UUID)

    First 48 bits carry the Unix timestamp in milliseconds, the rest is random
    apart from the version and variant bits.

    Returns:
        Sortable UUID string (e.g., "01908e9a-3b87-7000-8000-123456789abc")
    """
    timestamp_48 = int(time.time() * 1000) & 0xFFFFFFFFFFFF
    rand_a = secrets.randbits(12)
    rand_b = secrets.randbits(62)

    time_high = (timestamp_48 >> 16) & 0xFFFFFFFF
    time_low = timestamp_48 & 0xFFFF
    version_and_rand = 0x7000 | rand_a
    variant_and_rand = 0x8000 | ((rand_b >> 48) & 0x3FFF)
    node = rand_b & 0xFFFFFFFFFFFF

    return (
        f"{time_high:08x}-{time_low:04x}-{version_and_rand:04x}-"
        f"{variant_and_rand:04x}-{node:012x}"
    )


def new_session_id() -> str:
    return f"ses-{generate_id()}"


def new_entry_id() -> str:
    return f"reg-{generate_id()}"
