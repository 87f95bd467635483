"""ID generation utilities."""

from nanoid import generate

ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
ID_LENGTH = 12


def gen_id(prefix: str) -> str:
    return f"{prefix}{generate(ALPHABET, ID_LENGTH)}"


def user_id() -> str:
    return gen_id("us_")


def errand_id() -> str:
    return gen_id("er_")


def commission_id() -> str:
    return gen_id("cm_")
