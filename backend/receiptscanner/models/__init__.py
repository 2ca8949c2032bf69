"""Domain values, enumerations and ORM rows for the receipt core."""
