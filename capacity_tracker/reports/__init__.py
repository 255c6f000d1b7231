"""Historical capacity extraction and Excel export."""
