"""Clients for services outside the ledger."""
