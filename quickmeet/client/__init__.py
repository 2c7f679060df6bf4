"""Client side of the booking flow: API gateway, form state and options."""
