"""Pure ledger domain: schema, allocation, reconciliation, aggregation."""
