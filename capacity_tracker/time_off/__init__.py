"""Time-off requests and their approval workflow."""
