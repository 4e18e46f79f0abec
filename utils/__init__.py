"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc, to_local, today_local, current_year, BUSINESS_TIMEZONE
from utils.request_context import (
    get_current_issuer_id,
    get_current_user_id,
    get_request_origin,
    set_request_context,
    clear_request_context,
    request_context,
)
