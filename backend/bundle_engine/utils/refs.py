"""De-identified reference helpers.

References are a truncated SHA-256 of a salted, prefixed id. They are stable
within one deployment (same ``app_key``) and cannot be reversed to the id.
"""

import hashlib

from bundle_engine.config import settings


def hashed_ref(prefix: str, kind: str, identifier: int | str, salt: str | None = None) -> str:
    """Build a short de-identified reference such as ``P-3fa1``.

    Args:
        prefix: Display prefix (``P``, ``U``, ``S``)
        kind: Namespace folded into the hash (``patient``, ``user``, ``staff``)
        identifier: Raw id to hide
        salt: Override for the deployment salt (defaults to settings.app_key)

    Returns:
        Prefixed four-character hex reference
    """
    salt = settings.app_key if salt is None else salt
    digest = hashlib.sha256(f"{kind}_{identifier}{salt}".encode()).hexdigest()
    return f"{prefix}-{digest[:4]}"


def patient_ref(patient_id: int | str, salt: str | None = None) -> str:
    return hashed_ref("P", "patient", patient_id, salt)


def user_ref(user_id: int | str, salt: str | None = None) -> str:
    return hashed_ref("U", "user", user_id, salt)


def staff_ref(staff_id: int | str, salt: str | None = None) -> str:
    return hashed_ref("S", "staff", staff_id, salt)
