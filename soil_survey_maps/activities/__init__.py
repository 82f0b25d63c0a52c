"""Walkthrough activities: load, build layers, render, export."""
