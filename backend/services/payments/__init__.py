"""Payment collection and status reconciliation for invoices and payment requests."""
