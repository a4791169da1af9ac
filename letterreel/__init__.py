"""letterreel - letters rendered into narrated scrolling videos and PDFs."""

__version__ = "0.1.0"
