"""
Seam to the external PDF renderer.

Layout and templating live outside this package. The core only needs a
callable render(invoice, client, issuer, template) -> bytes and bounds each
call with a timeout. A timed-out render is abandoned: its worker thread may
keep running, but its result is discarded and nothing is persisted.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Any, Callable, Protocol

from core.exceptions import RenderError, RenderTimeoutError
from core.models import Client, Invoice, Issuer

logger = logging.getLogger(__name__)


class PdfRenderer(Protocol):
    def __call__(self, invoice: Invoice, client: Client, issuer: Issuer, template: dict[str, Any]) -> bytes:
        ...


# Used when the issuer has no template of their own
DEFAULT_TEMPLATE: dict[str, Any] = {
    "name": "Moderne",
    "template_component": "ModerneTemplate",
    "colors": {"primary": "#2563eb", "text": "#111827"},
    "fonts": {"heading": "Inter", "body": "Inter"},
    "layout": "standard",
    "sections": {"show_logo": True, "show_payment_terms": True, "show_legal_mentions": True},
}

TemplateResolver = Callable[[Issuer], dict[str, Any]]


def default_template_resolver(issuer: Issuer) -> dict[str, Any]:
    return dict(DEFAULT_TEMPLATE)


def render_with_timeout(
    render: PdfRenderer,
    invoice: Invoice,
    client: Client,
    issuer: Issuer,
    template: dict[str, Any],
    timeout_seconds: float,
) -> bytes:
    """
    Run the renderer in a worker thread and wait at most timeout_seconds.

    Raises:
        RenderTimeoutError: Renderer did not finish in time
        RenderError: Renderer raised or returned something other than non-empty bytes
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pdf-render")
    future = executor.submit(render, invoice, client, issuer, template)
    try:
        result = future.result(timeout=timeout_seconds)
    except FutureTimeoutError:
        future.cancel()
        logger.error(f"PDF render for {invoice.invoice_number} exceeded {timeout_seconds}s")
        raise RenderTimeoutError(f"PDF rendering exceeded {timeout_seconds} seconds")
    except Exception as e:
        logger.exception(f"PDF render failed for {invoice.invoice_number}")
        raise RenderError(f"PDF rendering failed: {e}") from e
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    if not isinstance(result, (bytes, bytearray)) or not result:
        raise RenderError("PDF renderer returned no content")

    return bytes(result)
