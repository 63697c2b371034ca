"""Pipeline services: run store, image resolution, extraction, ledger and orchestration."""
