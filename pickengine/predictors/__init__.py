"""Regression trainer/predictor and feature construction."""
