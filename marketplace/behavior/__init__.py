"""User behavior events and the queries built on them."""
