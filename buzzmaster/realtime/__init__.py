"""Real-time fan-out to connected clients.

The hub and publisher live on the app (``app.extensions['buzzmaster']``);
these helpers fetch them for the current request.
"""
from flask import current_app


def get_hub():
    return current_app.extensions['buzzmaster'].hub


def get_publisher():
    return current_app.extensions['buzzmaster'].publisher
