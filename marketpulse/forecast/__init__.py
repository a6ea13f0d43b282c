"""Forecasting, anomaly detection and trend analysis over metric history."""
