"""Notification formatting, delivery channels and the dispatcher."""
