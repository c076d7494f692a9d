"""ABOUTME: WSGI entry point for production deployment
ABOUTME: Creates the Flask application and starts the maintenance thread for servers like Gunicorn"""

from warden.entrypoints.flask_app import create_app
from warden.entrypoints.scheduler import MaintenanceScheduler

app = create_app()
scheduler = MaintenanceScheduler(app.extensions["warden"], app.config["MAINTENANCE"])
scheduler.start()

if __name__ == "__main__":
    app.run()
