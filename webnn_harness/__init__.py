"""Browser-driven WebNN conformance and model demo test harness."""
