"""Registration engine: admission, eligibility, ledger, capacity coordination."""
