"""Branch policy — protected targets only change through migrations."""
