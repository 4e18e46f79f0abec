"""
Sequential invoice numbering per issuer per calendar year.

Numbers come from one conditional UPDATE ... RETURNING on the issuer's
counter row. The yearly reset and the increment happen in the same
statement, so concurrent callers across processes can never both observe
a reset: the first caller of a new year gets 1, the next gets 2.

Gaps are tolerated (a number allocated for an invoice whose insert later
fails is simply lost). Duplicates never are.
"""

import logging
import re
import unicodedata
from uuid import UUID

from clients.base import DatabaseClient, DatabaseError
from core.config import FinalizationConfig
from core.exceptions import AllocationError, NotFoundError
from core.models import AllocatedNumber, IssuerCounter
from utils.timezone import current_year, now_utc

logger = logging.getLogger(__name__)

_NON_LETTERS = re.compile(r"[^A-Za-z]")


def client_initials(client_name: str | None) -> str:
    """
    First three letters of a client name, uppercased.

    Accents are folded ("Élan" -> "ELA"); digits, spaces and punctuation
    are dropped. Returns "" when the name has no letters.
    """
    if not client_name:
        return ""
    folded = unicodedata.normalize("NFKD", client_name)
    letters = _NON_LETTERS.sub("", folded.encode("ascii", "ignore").decode("ascii"))
    return letters[:3].upper()


def format_invoice_number(
    prefix: str,
    year: int,
    sequence: int,
    client_name: str | None = None,
    padding: int = 4,
) -> str:
    """
    Format: {prefix}{year}-{CLI-}{NNNN}

    format_invoice_number("FAC", 2025, 1, "Beta Corp") == "FAC2025-BET-0001"
    format_invoice_number("FAC", 2025, 12) == "FAC2025-0012"
    """
    initials = client_initials(client_name)
    middle = f"{initials}-" if initials else ""
    return f"{prefix}{year}-{middle}{sequence:0{padding}d}"


class NumberingService:
    """Allocates document numbers from per-issuer counters."""

    def __init__(self, db: DatabaseClient, config: FinalizationConfig | None = None):
        self.db = db
        self.config = config or FinalizationConfig()

    def ensure_counter(self, issuer_id: UUID, prefix: str | None = None, year: int | None = None) -> None:
        """Create the issuer's counter if missing. Never touches an existing one."""
        self.db.execute(
            """
            INSERT INTO issuer_counters (issuer_id, prefix, year, next_number, updated_at)
            VALUES (%s, %s, %s, 1, %s)
            ON CONFLICT (issuer_id) DO NOTHING
            """,
            (issuer_id, prefix or self.config.default_prefix, year or current_year(), now_utc())
        )

    def get_counter(self, issuer_id: UUID) -> IssuerCounter | None:
        row = self.db.execute_single(
            "SELECT issuer_id, prefix, year, next_number FROM issuer_counters WHERE issuer_id = %s",
            (issuer_id,)
        )
        if row is None:
            return None
        return IssuerCounter.model_validate(row)

    def _increment(self, issuer_id: UUID, year: int, prefix: str | None) -> dict | None:
        # All SET expressions read the pre-update row. A caller whose clock
        # is behind the stored year never rolls the counter back.
        return self.db.execute_single(
            """
            UPDATE issuer_counters
            SET next_number = CASE WHEN year < %s THEN 2 ELSE next_number + 1 END,
                year = CASE WHEN year < %s THEN %s ELSE year END,
                prefix = COALESCE(%s, prefix),
                updated_at = %s
            WHERE issuer_id = %s
            RETURNING prefix, year, next_number
            """,
            (year, year, year, prefix, now_utc(), issuer_id)
        )

    def allocate(
        self,
        issuer_id: UUID,
        now_year: int | None = None,
        prefix: str | None = None,
        client_name: str | None = None,
    ) -> AllocatedNumber:
        """
        Issue the next number for an issuer.

        Args:
            issuer_id: Issuer whose counter is incremented
            now_year: Calendar year of the allocation (defaults to today in Paris)
            prefix: Prefix override, persisted on the counter
            client_name: Injects the client's initials into the number

        Returns:
            The formatted number with its raw sequence and year

        Raises:
            NotFoundError: Issuer does not exist
            AllocationError: Counter update failed; retry the whole creation
        """
        year = now_year or current_year()

        try:
            row = self._increment(issuer_id, year, prefix)

            if row is None:
                issuer = self.db.execute_single("SELECT id FROM issuers WHERE id = %s", (issuer_id,))
                if issuer is None:
                    raise NotFoundError(f"Issuer {issuer_id} not found")

                logger.info(f"Creating missing counter for issuer {issuer_id}")
                self.ensure_counter(issuer_id, prefix=prefix, year=year)
                row = self._increment(issuer_id, year, prefix)

        except DatabaseError as e:
            logger.exception(f"Counter update failed for issuer {issuer_id}")
            raise AllocationError(f"Could not allocate an invoice number: {e}") from e

        if row is None:
            raise AllocationError(f"Counter for issuer {issuer_id} disappeared during allocation")

        sequence = row["next_number"] - 1
        invoice_number = format_invoice_number(
            row["prefix"], row["year"], sequence, client_name, self.config.sequence_padding
        )

        logger.info(f"Allocated {invoice_number} for issuer {issuer_id}")

        return AllocatedNumber(
            invoice_number=invoice_number,
            sequence=sequence,
            year=row["year"],
            prefix=row["prefix"],
        )
