"""
Typed failures for the confidential exchange.

Contracts fail with ``assert cond, "<Category>: detail"``; the runtime
surfaces that as an ``AssertionError``. ``translate`` turns it back into
one of the classes below so callers can branch on the category.
"""


class ExchangeError(Exception):
    """Base class for every exchange failure."""


class InvalidProof(ExchangeError):
    """Input proof does not bind the handle to this submitter and contract."""


class StaleOrReplayedProof(ExchangeError):
    """Input proof nonce already used, or handle already admitted."""


class Unauthorized(ExchangeError):
    """Missing or expired operator grant, or handle not usable by the caller."""


class ZeroBalance(ExchangeError):
    """Debit from an account that never received the asset."""


class InvalidAmount(ExchangeError):
    """Plaintext amount or parameter outside the accepted range."""


class ReserveUnderflow(ExchangeError):
    """Swap output would exceed the reserve of the output asset."""


class NoGrant(ExchangeError):
    """Viewer holds no disclosure grant for the handle."""


class ExpiredAuthorization(ExchangeError):
    """Signed decryption request is outside its validity window."""


class SignatureMismatch(ExchangeError):
    """Decryption request signature does not match the requesting wallet."""


class CiphertextUnderflow(ExchangeError):
    """
    Encrypted subtraction with a larger subtrahend.

    Never a business error: contracts guard every subtraction with an
    encrypted select, so reaching this is a programming error.
    """


CATEGORIES = {
    cls.__name__: cls
    for cls in (
        InvalidProof,
        StaleOrReplayedProof,
        Unauthorized,
        ZeroBalance,
        InvalidAmount,
        ReserveUnderflow,
    )
}


def translate(exc: AssertionError) -> ExchangeError:
    message = str(exc)
    category, _, detail = message.partition(":")
    cls = CATEGORIES.get(category.strip())
    if cls is None:
        return ExchangeError(message)
    return cls(detail.strip())
