"""Match domain services: presence, join codes, submissions and outcomes.

This package contains the match lifecycle logic imported by HTTP routes and
socket handlers, keeping transport concerns separated from the rules.
"""
