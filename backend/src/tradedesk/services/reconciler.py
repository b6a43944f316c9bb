"""
Invoice line reconciler.

Applies a validated invoice to the store:
- create: header and every line in one combined write
- update: overwrite the header, then move the persisted line set to the
  submitted one with a three-way reconciliation

The reconciliation never deletes and re-inserts the whole line set:
1. one bulk delete for lines whose product was not resubmitted
2. for each submitted line, update the quantity if the (invoice, product)
   row exists, otherwise insert it

Callers are expected to run both paths inside store.transaction() and to
have checked that the invoice exists before calling update().
"""

import logging

from tradedesk.domain.models import ReconcileSummary, ValidatedInvoice
from tradedesk.infrastructure.store import InvoiceStore

logger = logging.getLogger(__name__)


class LineReconciler:
    """
    Writes validated invoices and reconciles their line sets.

    Example:
        reconciler = LineReconciler(store)
        async with store.transaction():
            summary = await reconciler.update(invoice_id, validated)
    """

    def __init__(self, store: InvoiceStore) -> None:
        self.store = store

    async def create(self, validated: ValidatedInvoice) -> int:
        """
        Insert a new invoice with all of its lines.

        Returns:
            The generated invoice id
        """
        invoice_id = await self.store.create_invoice_with_lines(
            validated.header,
            validated.lines,
        )
        logger.info(f"Invoice {invoice_id} created with {len(validated.lines)} line(s)")
        return invoice_id

    async def update(self, invoice_id: int, validated: ValidatedInvoice) -> ReconcileSummary:
        """
        Overwrite the header and reconcile the line set of an existing invoice.

        Args:
            invoice_id: Invoice already confirmed to exist
            validated: Request that passed every validation pass

        Returns:
            ReconcileSummary with the number of deleted, updated and inserted lines
        """
        await self.store.update_invoice_header(invoice_id, validated.header)

        submitted = {line.product_id for line in validated.lines}
        deleted = await self.store.delete_invoice_lines_not_in(invoice_id, submitted)

        updated = 0
        inserted = 0
        for line in validated.lines:
            existing = await self.store.find_invoice_line(invoice_id, line.product_id)
            if existing is not None:
                await self.store.update_invoice_line_quantity(
                    invoice_id, line.product_id, line.quantity
                )
                updated += 1
            else:
                await self.store.create_invoice_line(
                    invoice_id, line.product_id, line.quantity
                )
                inserted += 1

        summary = ReconcileSummary(deleted=deleted, updated=updated, inserted=inserted)
        logger.info(
            f"Invoice {invoice_id} reconciled: deleted={summary.deleted}, "
            f"updated={summary.updated}, inserted={summary.inserted}"
        )
        return summary
