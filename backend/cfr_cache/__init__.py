"""CFR title word-count cache."""
