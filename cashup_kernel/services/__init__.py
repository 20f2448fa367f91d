"""Write-side services.  Each takes the caller's session and only flushes."""

from cashup_kernel.services.account_service import AccountService
from cashup_kernel.services.auditor_service import AuditorService, AuditTrace, AuditTraceEntry
from cashup_kernel.services.exception_service import ExceptionService
from cashup_kernel.services.guide_service import GuideService
from cashup_kernel.services.invoice_service import InvoiceNotifier, InvoiceService, InvoiceSubmission
from cashup_kernel.services.ledger_service import CashupResult, LedgerService, RecalculationSummary
from cashup_kernel.services.report_service import ReportNotifier, ReportService
from cashup_kernel.services.sequence_service import SequenceService

__all__ = [
    "AccountService",
    "AuditTrace",
    "AuditTraceEntry",
    "AuditorService",
    "CashupResult",
    "ExceptionService",
    "GuideService",
    "InvoiceNotifier",
    "InvoiceService",
    "InvoiceSubmission",
    "LedgerService",
    "RecalculationSummary",
    "ReportNotifier",
    "ReportService",
    "SequenceService",
]
