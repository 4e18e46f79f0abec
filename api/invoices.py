"""Invoice endpoints: drafts, finalization, integrity and archived PDFs.

Handlers are plain `def`: every service call blocks on the database, the
renderer or the filesystem, so FastAPI runs them in its threadpool.
"""

from uuid import UUID

from fastapi import APIRouter, Query, Request
from starlette.responses import JSONResponse, Response

from api.base import success_response
from core.exceptions import NotFoundError
from core.models import InvoiceCreate, InvoiceUpdate, StatusChange
from core.services.integrity_service import VerificationStatus

# Header values exposed to clients for the integrity state
_INTEGRITY_HEADER = {
    VerificationStatus.VALID: "valid",
    VerificationStatus.TAMPERED: "compromised",
    VerificationStatus.MISSING: "missing",
}


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def create_invoices_router(services: dict) -> APIRouter:
    router = APIRouter()

    invoice_svc = services["invoice"]
    finalization_svc = services["finalization"]

    @router.post("/invoices", status_code=201)
    def create_invoice(request: Request, body: InvoiceCreate):
        invoice = invoice_svc.create(body)
        return success_response(invoice.model_dump(mode="json"), _request_id(request)).model_dump(mode="json")

    @router.get("/invoices/{invoice_id}")
    def get_invoice(request: Request, invoice_id: UUID):
        invoice = invoice_svc.get_by_id(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return success_response(invoice.model_dump(mode="json"), _request_id(request)).model_dump(mode="json")

    @router.patch("/invoices/{invoice_id}")
    def update_invoice(request: Request, invoice_id: UUID, body: InvoiceUpdate):
        invoice = invoice_svc.update(invoice_id, body)
        return success_response(invoice.model_dump(mode="json"), _request_id(request)).model_dump(mode="json")

    @router.delete("/invoices/{invoice_id}")
    def delete_invoice(request: Request, invoice_id: UUID):
        invoice_svc.delete(invoice_id)
        return success_response({"id": str(invoice_id), "deleted": True}, _request_id(request)).model_dump(mode="json")

    @router.get("/invoices/{invoice_id}/history")
    def invoice_history(
        request: Request,
        invoice_id: UUID,
        limit: int | None = Query(None, ge=1, le=1000),
    ):
        entries = invoice_svc.get_history(invoice_id, limit)
        return success_response(
            [e.model_dump(mode="json") for e in entries], _request_id(request)
        ).model_dump(mode="json")

    @router.post("/invoices/{invoice_id}/finalize")
    def finalize_invoice(request: Request, invoice_id: UUID):
        result = finalization_svc.finalize(invoice_id)
        data = result.model_dump(mode="json", include={
            "invoice_id", "invoice_number", "is_finalized", "finalized_at", "pdf_hash",
        })
        return success_response(data, _request_id(request)).model_dump(mode="json")

    @router.get("/invoices/{invoice_id}/verify")
    def verify_invoice(request: Request, invoice_id: UUID):
        report = invoice_svc.verify(invoice_id)
        return JSONResponse(
            content=success_response(report.model_dump(mode="json"), _request_id(request)).model_dump(mode="json"),
            headers={"X-PDF-Integrity": _INTEGRITY_HEADER[report.status]},
        )

    @router.get("/invoices/{invoice_id}/download-pdf")
    def download_pdf(invoice_id: UUID):
        return _pdf_response(invoice_svc, invoice_id, "attachment")

    @router.get("/invoices/{invoice_id}/view-pdf")
    def view_pdf(invoice_id: UUID):
        return _pdf_response(invoice_svc, invoice_id, "inline")

    @router.patch("/invoices/{invoice_id}/status")
    def change_invoice_status(request: Request, invoice_id: UUID, body: StatusChange):
        invoice = invoice_svc.change_status(invoice_id, body)
        data = invoice.model_dump(mode="json", include={
            "id", "invoice_number", "status", "payment_status", "payment_date",
        })
        return success_response(data, _request_id(request)).model_dump(mode="json")

    return router


def _pdf_response(invoice_svc, invoice_id: UUID, disposition: str) -> Response:
    filename, data = invoice_svc.get_pdf(invoice_id)
    return Response(
        content=data,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'{disposition}; filename="{filename}"',
            "X-PDF-Integrity": "valid",
            "Cache-Control": "private, no-store",
        },
    )
