"""marketpulse: operational monitoring and alerting core for the marketplace."""
