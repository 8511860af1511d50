"""XP ledger, levels, streaks, achievements and mentor bonuses."""
