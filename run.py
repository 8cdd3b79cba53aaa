#!/usr/bin/env python3
"""
Main entry point for running the WatchMe Flask application.
"""

from watchme.app import create_app

app = create_app()

if __name__ == "__main__":
    # The reloader would start a second scheduler
    app.run(debug=True, use_reloader=False)
