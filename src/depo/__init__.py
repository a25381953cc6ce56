"""DEPO Goal Tracker billing service."""
