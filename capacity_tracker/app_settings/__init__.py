"""Runtime capacity tunables stored in the settings table."""
