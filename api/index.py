"""
Serverless entry point for the Campus Resolve API
"""
import os

# Set environment variables for serverless
os.environ.setdefault("ENVIRONMENT", "production")
os.environ.setdefault("ESCALATION_SWEEP_INTERVAL", "0")  # Sweeps arrive through the cron endpoints

from mangum import Mangum

from campus_resolve.config import settings
from campus_resolve.container import build_container
from campus_resolve.infrastructure.database import init_database
from campus_resolve.main import app
from campus_resolve.shared.infrastructure.logging import setup_logging

# Lifespan is off, so wire what it would have; the outbox worker starts on first submit
setup_logging(settings.log_level, settings.environment)
init_database(settings)
app.state.container = build_container(settings)

handler = Mangum(app, lifespan="off")
