"""Issuer legal profile completeness.

An invoice cannot be finalized until the issuer's legal identity is complete:
the archived PDF must carry the seller's name, legal form, address and tax id.
"""

from core.models import Issuer

# (attribute, label shown to the user)
REQUIRED_PROFILE_FIELDS = (
    ("company_name", "Company name"),
    ("legal_form", "Legal form"),
    ("street", "Street address"),
    ("city", "City"),
    ("zip_code", "Zip code"),
    ("tax_id", "Tax ID (SIRET or VAT number)"),
)


def missing_profile_fields(issuer: Issuer | None) -> list[str]:
    """Labels of required profile fields that are empty."""
    if issuer is None:
        return [label for _, label in REQUIRED_PROFILE_FIELDS]
    return [
        label for attr, label in REQUIRED_PROFILE_FIELDS
        if not (getattr(issuer, attr) or "").strip()
    ]


def check_profile_complete(issuer: Issuer | None) -> tuple[bool, list[str]]:
    """
    Default profile-completeness collaborator.

    Returns:
        (complete, missing_field_labels)
    """
    missing = missing_profile_fields(issuer)
    return not missing, missing
