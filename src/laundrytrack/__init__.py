"""laundrytrack - order tracking for a laundry: processing pipeline, home delivery and incidents."""

__version__ = "0.1.0"
