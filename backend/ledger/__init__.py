"""Position Ledger - weighted-average cost accounting for investment positions."""
