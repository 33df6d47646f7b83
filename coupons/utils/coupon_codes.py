"""
Coupon code plausibility heuristic.

Scrapers regularly capture call-to-action text ("Sign up for the
newsletter", "Code wird im Warenkorb abgezogen") in the code slot. Such
coupons are stored but flagged with should_be_fake so that they are not
presented as real codes.
"""

from typing import Optional

MIN_CODE_LENGTH = 2
MAX_CODE_LENGTH = 32

# Alternative-code separators: "SAVE10 | SAVE20", "A, B", "A or B"
CODE_SEPARATORS = ("|", ",", " or ")

# Words that only show up in multi-word instructions, never in real codes
INVALID_CODE_WORDS = (
    "zur",
    "nach",
    "kein",
    "sign",
    "signup",
    "sign-up",
    "via",
    "singing",
    "redeem",
    "inbox",
    "wird",
    "mehr",
    "customers",
    "direkt",
    "abgezogen",
    "newsletter",
    "details",
    "nieuwsbrief",
    "will",
    "claim",
    "code",
    "registro",
    "nyhedsbrevet",
    "tilmeld",
    "anmeldung",
    "siehe",
    "activated",
    "no",
    "coupon",
    "linkkiä",
    "link",
    "e-mail",
    "email",
    "per",
    "direkt abgezogen",
    "directamente",
    "automatico",
    "automatically",
    "aktionsprodukte entdecken",
    "als",
    "directo",
    "app ",
    "auf",
    "automatisch",
    "bei",
    "für",
    "bliv medlem",
    "downloaden",
    "genius discount",
    "genius rabatt",
    "geschäftskunden",
    "geschenkkarten",
    "geschenkkarte",
    "tilaa",
    "zie",
    "zum",
    "mit",
    "im",
    "register",
    "member",
    "liity",
    "membership",
)


def is_valid_coupon_code(code: Optional[str]) -> bool:
    """
    Return True when the code looks like something a shopper could type.

    Example:
        >>> is_valid_coupon_code("SAVE20")
        True
        >>> is_valid_coupon_code("Sign up for newsletter")
        False
    """
    if code is None:
        return False

    multi_word = len(code.split(" ")) > 1

    if multi_word and not any(sep in code for sep in CODE_SEPARATORS):
        return False

    if len(code) < MIN_CODE_LENGTH or len(code) > MAX_CODE_LENGTH:
        return False

    if code.count("*") > 1:
        return False

    if code.startswith("https://") or code.startswith("http://"):
        return False

    if multi_word:
        lowered = code.lower()
        if any(word in lowered for word in INVALID_CODE_WORDS):
            return False

    return True


def should_be_fake(code: Optional[str]) -> bool:
    """A stored code is flagged only when present and implausible."""
    if not code:
        return False
    return not is_valid_coupon_code(code)
