"""Member billing ledger: payment allocations and invoice status reconciliation."""
