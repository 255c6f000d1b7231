"""Weekly allocations, working days and team capacity rollups."""
